"""Lightweight structural validation for generated FHIR bundles."""

from __future__ import annotations

from typing import Any

_PAIRED_LINKS = {
    # resourceType -> (link field, target resourceType, reciprocal field)
    "ServiceRequest": ("supportingInfo", "ImagingStudy", "basedOn"),
    "ImagingStudy": ("basedOn", "ServiceRequest", "supportingInfo"),
}


def _collect_references(node: Any) -> set[str]:
    refs: set[str] = set()
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str):
                refs.add(value)
            else:
                refs.update(_collect_references(value))
    elif isinstance(node, list):
        for item in node:
            refs.update(_collect_references(item))
    return refs


def _link_references(resource: dict[str, Any], field: str) -> list[str]:
    links = resource.get(field)
    if not isinstance(links, list):
        return []
    return [
        link["reference"]
        for link in links
        if isinstance(link, dict) and isinstance(link.get("reference"), str)
    ]


def validate_fhir_bundle_structure(bundle: dict[str, Any]) -> list[str]:
    """Validate minimal bundle structure and Type/id references.

    ServiceRequest.supportingInfo and ImagingStudy.basedOn must point at
    each other. An empty collection is well formed.
    """
    issues: list[str] = []

    if not isinstance(bundle, dict):
        return ["fatal: bundle must be a JSON object."]

    if bundle.get("resourceType") != "Bundle":
        issues.append("fatal: resourceType must be 'Bundle'.")
    if bundle.get("type") != "collection":
        issues.append("fatal: bundle type must be 'collection'.")

    entries = bundle.get("entry")
    if not isinstance(entries, list):
        issues.append("fatal: bundle.entry must be an array.")
        return issues

    resources: dict[str, dict[str, Any]] = {}

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            issues.append(f"fatal: bundle.entry[{index}] must be an object.")
            continue
        resource = entry.get("resource")
        if not isinstance(resource, dict):
            issues.append(f"fatal: bundle.entry[{index}].resource must be an object.")
            continue
        resource_type = resource.get("resourceType")
        resource_id = resource.get("id")
        if not isinstance(resource_type, str) or not resource_type:
            issues.append(f"fatal: bundle.entry[{index}] missing resourceType.")
            continue
        if not isinstance(resource_id, str) or not resource_id:
            issues.append(f"fatal: bundle.entry[{index}] missing id.")
            continue
        key = f"{resource_type}/{resource_id}"
        if key in resources:
            issues.append(f"fatal: duplicate resource '{key}'.")
        resources[key] = resource

    unresolved = _collect_references(bundle) - set(resources)
    for ref in sorted(unresolved):
        issues.append(f"fatal: unresolved internal reference '{ref}'.")

    for key, resource in resources.items():
        link = _PAIRED_LINKS.get(resource["resourceType"])
        if link is None:
            continue
        field, target_type, reciprocal_field = link
        for ref in _link_references(resource, field):
            target = resources.get(ref)
            if target is None or not ref.startswith(f"{target_type}/"):
                continue
            if key not in _link_references(target, reciprocal_field):
                issues.append(f"fatal: '{ref}' does not link back to '{key}'.")

    return issues


def has_fatal_issue(issues: list[str]) -> bool:
    return any(issue.lower().startswith("fatal:") for issue in issues)
