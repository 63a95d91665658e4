"""Field normalization for tracker payloads.

The tracker describes issues and changes as lists of raw fields, each in one
of three shapes:

    reference:  {"name": "Assignee", "value": ["Alice"], "valueId": ["alice"]}
                {"name": "State", "value": [{"value": "Open"}]}
    change:     {"name": "State", "oldValue": ["Open"], "newValue": ["Fixed"]}
    scalar:     {"name": "summary", "value": "Crash on start"}

`normalize_fields` flattens such a list into a name -> value mapping, with
change fields turned into FieldChange pairs.

Example:
    normalized = normalize_fields(change["field"])
    record = to_change_record(normalized)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from tracknotify.exceptions import MalformedPayloadError
from tracknotify.models import Attachment, ChangeRecord, FieldChange, NormalizedFields
from tracknotify.utils import parse_timestamp_ms

SPRINT_FIELD = "sprint"
ATTACHMENTS_FIELD = "attachments"
UPDATED_FIELD = "updated"
UPDATER_FIELD = "updaterName"


def normalize_fields(fields: Sequence[Mapping[str, Any]] | None) -> NormalizedFields:
    """Flatten a raw field list.

    Args:
        fields: Raw fields from the tracker. None is treated as an empty list.

    Returns:
        NormalizedFields with the flat mapping and the changed field names.

    Raises:
        MalformedPayloadError: If a field does not match any known shape.
    """
    values: dict[str, Any] = {}
    changed: list[str] = []

    if fields is None:
        return NormalizedFields()

    if not isinstance(fields, Sequence) or isinstance(fields, str):
        raise MalformedPayloadError(
            "Field list is not a list",
            details={"type": type(fields).__name__},
        )

    for field in fields:
        name = _field_name(field)

        if isinstance(field.get("value"), list):
            values[name] = _reference_value(name, field)

        elif "oldValue" in field and "newValue" in field:
            if name not in changed:
                changed.append(name)
            values[name] = _change_value(name, field)

        else:
            values[name] = field.get("value")

    return NormalizedFields(values=values, changed_fields=changed)


def _field_name(field: Any) -> str:
    if not isinstance(field, Mapping):
        raise MalformedPayloadError(
            "Field is not an object",
            details={"type": type(field).__name__},
        )

    name = field.get("name")
    if not isinstance(name, str) or not name:
        raise MalformedPayloadError("Field has no name", details={"field": dict(field)})

    return name


def _reference_value(name: str, field: Mapping[str, Any]) -> Any:
    """Resolve a reference field to a display value."""
    value_list: list[Any] = field["value"]
    value_ids = field.get("valueId")

    if not value_list:
        return None

    first = value_list[0]

    if isinstance(value_ids, list):
        label = _label(first)
        if not value_ids:
            return label
        return f"{label} [{value_ids[0]}]"

    if not isinstance(first, Mapping) or "value" not in first:
        raise MalformedPayloadError(
            "Reference field value is not an object with a value member",
            details={"field": name, "value": first},
        )

    return first["value"]


def _label(element: Any) -> Any:
    if isinstance(element, Mapping):
        if "label" in element:
            return element["label"]
        return element.get("value")
    return element


def _change_value(name: str, field: Mapping[str, Any]) -> FieldChange:
    """Extract the old/new pair of a change field."""
    old_value = _first(name, "oldValue", field["oldValue"])
    new_value = _first(name, "newValue", field["newValue"])

    if name.lower() == SPRINT_FIELD:
        old_value = _flatten_reference(old_value)
        new_value = _flatten_reference(new_value)

    return FieldChange(old_value=old_value, new_value=new_value)


def _first(name: str, key: str, values: Any) -> Any:
    if values is None:
        return None

    if not isinstance(values, list):
        raise MalformedPayloadError(
            f"Change field {key} is not a list",
            details={"field": name, key: values},
        )

    return values[0] if values else None


def _flatten_reference(value: Any) -> Any:
    if isinstance(value, Mapping) and "id" in value:
        return value["id"]
    return value


def extract_attachments(fields: Sequence[Mapping[str, Any]] | None) -> list[Attachment]:
    """Collect attachments from the raw `attachments` field.

    The normalizer keeps only the first element of a value list, so
    attachments are read from the raw payload instead.

    Args:
        fields: Raw fields from the tracker.

    Returns:
        Attachments that have both a name and a URL, in payload order.
    """
    attachments: list[Attachment] = []

    for field in fields or []:
        if not isinstance(field, Mapping) or field.get("name") != ATTACHMENTS_FIELD:
            continue

        entries = field.get("value")
        if not isinstance(entries, list):
            continue

        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            label = entry.get("value")
            url = entry.get("url")
            if label and url:
                attachments.append(Attachment(label=str(label), url=str(url)))

    return attachments


def to_change_record(normalized: NormalizedFields) -> ChangeRecord | None:
    """Build a ChangeRecord from one normalized change entry.

    Args:
        normalized: Output of normalize_fields for a single change.

    Returns:
        The change record, or None if the entry carries no usable timestamp.
    """
    updated = parse_timestamp_ms(normalized.values.get(UPDATED_FIELD))
    if updated is None:
        return None

    changes = {
        name: normalized.values[name]
        for name in normalized.changed_fields
        if isinstance(normalized.values.get(name), FieldChange)
    }

    updater = normalized.values.get(UPDATER_FIELD)

    return ChangeRecord(
        updated=updated,
        updater=str(updater) if updater is not None else None,
        changed_fields=list(changes),
        changes=changes,
    )
