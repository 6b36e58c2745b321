import threading
from unittest.mock import MagicMock

import pytest

from medcatalog.core.error_mapping import EMPTY_FILE_MESSAGE
from medcatalog.core.schemas import TestRecord
from medcatalog.pipelines import derive_session_status, run_import_session
from medcatalog.store import InMemoryAuditSink, InMemoryTestStore, StoreError

HEADER = "id,name,category,subCategory,cptCode\n"


def _run(content, store=None, **kwargs):
    store = store if store is not None else InMemoryTestStore()
    sink = InMemoryAuditSink()
    result = run_import_session(content, store=store, audit_sink=sink, **kwargs)
    return result, store, sink


def _classifications(result):
    return [(entry.operation, entry.status, entry.duplicate_reason) for entry in result.entries]


def test_valid_row_is_inserted():
    result, store, _ = _run(HEADER + ",CBC,Laboratory Tests,Hematology,85027\n")

    entry = result.entries[0]
    assert entry.operation == "insert"
    assert entry.status == "success"
    assert entry.test_id == "TTES-LAB-HEM-85027"
    assert entry.original_test_id is None
    assert entry.processed_data["cptCode"] == "85027"
    assert result.session.status == "completed"
    assert result.session.success_count == 1
    assert store.get("TTES-LAB-HEM-85027").name == "CBC"


def test_invalid_cpt_code_is_a_validation_error():
    result, store, _ = _run(HEADER + ",CBC,Laboratory Tests,Hematology,8502\n")

    entry = result.entries[0]
    assert entry.operation == "error"
    assert entry.status == "validation_error"
    assert entry.validation_errors == {"cptCode": "CPT code must be 5 digits"}
    assert entry.original_data["cptCode"] == "8502"
    assert result.session.error_count == 1
    assert result.session.validation_errors == ["Row 1: CPT code must be 5 digits"]
    assert result.session.status == "failed"
    assert len(store) == 0


def test_same_file_cpt_collision_is_a_duplicate():
    content = (
        HEADER
        + ",CBC,Laboratory Tests,Hematology,85027\n"
        + ",CBC repeat,Laboratory Tests,Hematology,85027\n"
    )
    result, store, _ = _run(content)

    second = result.entries[1]
    assert second.operation == "skip"
    assert second.status == "duplicate"
    assert second.duplicate_reason == "cpt_code_exists"
    assert second.test_id is None
    assert result.session.duplicate_count == 1
    assert result.session.status == "completed"
    assert len(store) == 1


def test_existing_id_is_skipped_with_id_reason():
    store = InMemoryTestStore([
        TestRecord(id="LAB-1", name="CBC", category="Laboratory Tests", sub_category="Hematology"),
    ])
    result, _, _ = _run(HEADER + "LAB-1,CBC v2,Laboratory Tests,Hematology,\n", store=store)

    assert _classifications(result) == [("skip", "duplicate", "id_exists")]
    assert store.get("LAB-1").name == "CBC"


def test_every_row_gets_exactly_one_entry_in_order():
    content = (
        HEADER
        + ",CBC,Laboratory Tests,Hematology,85027\n"
        + ",,Laboratory Tests,Hematology,\n"
        + ",BMP,Laboratory Tests,Clinical Chemistry,80048\n"
    )
    result, _, sink = _run(content)

    assert [entry.sequence for entry in result.entries] == [1, 2, 3]
    assert sink.entries_for(result.session.id) == result.entries
    assert result.session.total_tests == 3
    assert result.session.success_count + result.session.error_count + result.session.duplicate_count == 3
    assert result.session.status == "partial"
    assert [record.name for record in result.records] == ["CBC", "BMP"]


def test_update_policy_updates_cpt_owner_and_keeps_its_id():
    store = InMemoryTestStore([
        TestRecord(
            id="LAB-1",
            name="CBC",
            category="Laboratory Tests",
            sub_category="Hematology",
            cpt_code="85027",
        ),
    ])
    result, _, _ = _run(
        HEADER + ",CBC automated,Laboratory Tests,Hematology,85027\n",
        store=store,
        duplicate_policy="update",
    )

    entry = result.entries[0]
    assert entry.operation == "update"
    assert entry.status == "success"
    assert entry.test_id == "LAB-1"
    assert entry.original_test_id is None
    assert entry.duplicate_reason == "cpt_code_exists"
    assert store.get("LAB-1").name == "CBC automated"
    assert len(store) == 1


def test_update_policy_by_id():
    store = InMemoryTestStore([
        TestRecord(id="LAB-1", name="CBC", category="Laboratory Tests", sub_category="Hematology"),
    ])
    result, _, _ = _run(
        HEADER + "LAB-1,CBC renamed,Laboratory Tests,Hematology,\n",
        store=store,
        duplicate_policy="update",
    )

    assert _classifications(result) == [("update", "success", "id_exists")]
    assert result.entries[0].test_id == "LAB-1"
    assert store.get("LAB-1").name == "CBC renamed"


def test_rerun_against_same_snapshot_is_deterministic():
    store = InMemoryTestStore([
        TestRecord(
            id="LAB-1",
            name="CBC",
            category="Laboratory Tests",
            sub_category="Hematology",
            cpt_code="85027",
        ),
    ])
    content = (
        HEADER
        + ",CBC,Laboratory Tests,Hematology,85027\n"
        + ",Glucose,Laboratory Tests,Clinical Chemistry,82947\n"
        + ",Bad,Laboratory Tests,Ultrasound,\n"
        + ",Glucose again,Laboratory Tests,Clinical Chemistry,82947\n"
    )

    first, _, _ = _run(content, store=store, dry_run=True)
    second, _, _ = _run(content, store=store, dry_run=True)

    assert _classifications(first) == _classifications(second)
    assert _classifications(first) == [
        ("skip", "duplicate", "cpt_code_exists"),
        ("insert", "success", None),
        ("error", "validation_error", None),
        ("skip", "duplicate", "cpt_code_exists"),
    ]
    assert len(store) == 1


def test_dry_run_leaves_store_untouched():
    store = InMemoryTestStore()
    result, _, _ = _run(HEADER + ",CBC,Laboratory Tests,Hematology,85027\n", store=store, dry_run=True)

    assert result.session.dry_run is True
    assert result.session.notes.startswith("Dry run:")
    assert result.entries[0].operation == "insert"
    assert len(store) == 0


def test_header_synonyms_are_resolved():
    content = "Test Name,Category,Sub Category,CPT\nCBC,Laboratory Tests,Hematology,85027\n"
    result, store, _ = _run(content)

    assert result.session.status == "completed"
    assert store.get("TTES-LAB-HEM-85027") is not None


def test_missing_required_headers_are_reported():
    result, _, _ = _run("name,cptCode\nCBC,85027\n")

    assert result.session.validation_errors[0] == "Missing required headers: category, subCategory"
    assert result.entries[0].status == "validation_error"
    assert result.session.status == "failed"


@pytest.mark.parametrize("content", ["", "\n\n", HEADER])
def test_empty_input_fails_the_session(content):
    result, _, sink = _run(content)

    assert result.entries == []
    assert result.session.status == "failed"
    assert result.session.total_tests == 0
    assert result.session.validation_errors == [EMPTY_FILE_MESSAGE]
    assert sink.get_session(result.session.id).status == "failed"


def test_store_failure_is_recorded_and_batch_continues():
    class FlakyStore(InMemoryTestStore):
        def insert(self, record):
            if record.name == "Broken":
                raise StoreError("disk full")
            return super().insert(record)

    content = (
        HEADER
        + ",Broken,Laboratory Tests,Hematology,85027\n"
        + ",BMP,Laboratory Tests,Clinical Chemistry,80048\n"
    )
    result, store, _ = _run(content, store=FlakyStore())

    assert _classifications(result) == [("error", "failed", None), ("insert", "success", None)]
    assert result.entries[0].error_message == "disk full"
    assert result.session.status == "partial"
    assert len(store) == 1


def test_cancelled_session_marks_remaining_rows_failed():
    cancel = MagicMock()
    cancel.is_set.side_effect = [False, True]
    content = (
        HEADER
        + ",CBC,Laboratory Tests,Hematology,85027\n"
        + ",BMP,Laboratory Tests,Clinical Chemistry,80048\n"
        + ",Glucose,Laboratory Tests,Clinical Chemistry,82947\n"
    )
    result, store, _ = _run(content, cancel_event=cancel)

    assert _classifications(result) == [
        ("insert", "success", None),
        ("error", "failed", None),
        ("error", "failed", None),
    ]
    assert "cancelled by caller" in result.entries[1].error_message
    assert result.session.status == "failed"
    assert result.session.notes == "aborted: cancelled by caller"
    assert result.session.error_count == 2
    assert len(store) == 1


def test_timeout_aborts_session():
    result, store, _ = _run(HEADER + ",CBC,Laboratory Tests,Hematology,85027\n", timeout_s=0)

    assert result.entries[0].status == "failed"
    assert result.session.notes == "aborted: session timed out"
    assert len(store) == 0


def test_threading_event_is_a_cancel_signal():
    event = threading.Event()
    event.set()
    result, _, _ = _run(HEADER + ",CBC,Laboratory Tests,Hematology,85027\n", cancel_event=event)

    assert result.session.status == "failed"


def test_unknown_duplicate_policy_is_rejected():
    with pytest.raises(ValueError, match="Unsupported duplicate policy"):
        _run(HEADER, duplicate_policy="merge")


@pytest.mark.parametrize(
    ("total", "success", "error", "expected"),
    [
        (0, 0, 0, "failed"),
        (3, 3, 0, "completed"),
        (2, 0, 0, "completed"),
        (2, 0, 2, "failed"),
        (3, 1, 2, "partial"),
    ],
)
def test_derive_session_status(total, success, error, expected):
    assert derive_session_status(total, success, error) == expected


def test_rows_in_subcategories_sharing_a_tag_get_distinct_ids():
    content = (
        HEADER
        + ",Resting ECG,Cardiovascular Tests,Electrocardiography,\n"
        + ",EP Study,Cardiovascular Tests,Electrophysiology Studies,\n"
    )
    result, store, _ = _run(content)

    assert _classifications(result) == [
        ("insert", "success", None),
        ("insert", "success", None),
    ]
    assert [entry.test_id for entry in result.entries] == [
        "TTES-CAR-ELE-00001",
        "TTES-CAR-ELE-00002",
    ]
    assert store.get("TTES-CAR-ELE-00002").sub_category == "Electrophysiology Studies"


def test_generated_id_never_overwrites_an_unrelated_record_on_update():
    store = InMemoryTestStore(
        [
            TestRecord(
                id="TTES-CAR-ELE-00001",
                name="EP Study",
                category="Cardiovascular Tests",
                sub_category="Electrophysiology Studies",
            )
        ]
    )
    content = HEADER + ",Resting ECG,Cardiovascular Tests,Electrocardiography,\n"

    result, store, _ = _run(content, store=store, duplicate_policy="update")

    entry = result.entries[0]
    assert entry.operation == "insert"
    assert entry.test_id == "TTES-CAR-ELE-00002"
    assert store.get("TTES-CAR-ELE-00001").name == "EP Study"
    assert store.get("TTES-CAR-ELE-00002").name == "Resting ECG"


def test_generated_id_skips_ids_claimed_earlier_in_the_file():
    content = (
        HEADER
        + "TTES-LAB-HEM-00001,Manual entry,Laboratory Tests,Hematology,\n"
        + ",Smear review,Laboratory Tests,Hematology,\n"
    )
    result, _, _ = _run(content)

    assert [entry.test_id for entry in result.entries] == [
        "TTES-LAB-HEM-00001",
        "TTES-LAB-HEM-00002",
    ]
