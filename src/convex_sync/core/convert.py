"""Row conversion from source documents to destination rows."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

ID_FIELD = "_id"
CREATION_TIME_FIELD = "_creationTime"

SYSTEM_COLUMNS = (ID_FIELD, CREATION_TIME_FIELD)


def is_exported_field(name: str) -> bool:
    """Fields prefixed by `_` are internal, except the document identity and creation time."""
    return not name.startswith("_") or name in SYSTEM_COLUMNS


def creation_time_to_iso(value: Any) -> Any:
    """Convert a creation time in milliseconds since epoch to an ISO-8601 UTC timestamp."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_row(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert the fields of a source document to a destination row.

    Args:
        fields: Document fields, including system fields

    Returns:
        Mapping of column name to value
    """
    row: dict[str, Any] = {}
    for name, value in fields.items():
        if not is_exported_field(name):
            continue
        if name == CREATION_TIME_FIELD:
            value = creation_time_to_iso(value)
        row[name] = value
    return row
