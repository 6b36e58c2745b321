import pytest

from medcatalog.importing.validator import format_row_errors, validate_row


def _row(**overrides):
    row = {
        "name": "CBC",
        "category": "Laboratory Tests",
        "subCategory": "Hematology",
        "cptCode": "85027",
    }
    row.update(overrides)
    return row


def test_valid_row_is_normalized():
    result = validate_row(_row(name="  CBC  ", loincCode="", notes=" fasting "))

    assert result.is_valid
    assert result.errors == {}
    record = result.record
    assert record.name == "CBC"
    assert record.cpt_code == "85027"
    assert record.loinc_code is None
    assert record.notes == "fasting"
    assert record.id is None


def test_four_digit_cpt_code_is_rejected():
    result = validate_row(_row(cptCode="8502"))

    assert not result.is_valid
    assert result.record is None
    assert result.errors == {"cptCode": "CPT code must be 5 digits"}


def test_all_rules_are_reported_together():
    result = validate_row({"cptCode": "ABCDE", "loincCode": "2345", "snomedCode": "12a"})

    assert result.errors == {
        "name": "Test name is required",
        "category": "Category is required",
        "subCategory": "Subcategory is required",
        "cptCode": "CPT code must be 5 digits",
        "loincCode": "LOINC code must be in format XXXXX-X",
        "snomedCode": "SNOMED code must be numeric",
    }


def test_subcategory_must_belong_to_category():
    result = validate_row(_row(subCategory="Ultrasound"))

    assert result.errors == {
        "subCategory": "Subcategory 'Ultrasound' is not valid for category 'Laboratory Tests'"
    }


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("loincCode", "2345-7"),
        ("loincCode", "58410-2"),
        ("snomedCode", "26604007"),
        ("cptCode", ""),
    ],
)
def test_well_formed_optional_codes_pass(field: str, value: str):
    assert validate_row(_row(**{field: value})).is_valid


def test_explicit_id_and_cpt_family_fields_are_kept():
    result = validate_row(_row(id=" LAB-1 ", baseCptCode="85027", cptSuffix="91"))

    assert result.record.id == "LAB-1"
    assert result.record.base_cpt_code == "85027"
    assert result.record.cpt_suffix == "91"


def test_format_row_errors():
    assert format_row_errors(3, {"name": "Test name is required", "cptCode": "CPT code must be 5 digits"}) == (
        "Row 3: Test name is required, CPT code must be 5 digits"
    )


def test_unknown_category_is_reported_under_category():
    result = validate_row(_row(category="Dental Tests"))

    assert result.errors == {
        "category": "Category 'Dental Tests' is not recognized",
        "subCategory": "Subcategory 'Hematology' is not valid for category 'Dental Tests'",
    }


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("cptCode", "８５０２７"),
        ("cptCode", "٨٥٠٢٧"),
        ("loincCode", "２３４５-7"),
        ("snomedCode", "２６６０４"),
    ],
)
def test_non_ascii_digits_are_rejected(field: str, value: str):
    result = validate_row(_row(**{field: value}))

    assert not result.is_valid
    assert field in result.errors
