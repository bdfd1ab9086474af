"""Destination table descriptions built from the source's columns."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Sequence

from convex_sync.core.convert import CREATION_TIME_FIELD, ID_FIELD


class DataType(str, Enum):
    UNSPECIFIED = "UNSPECIFIED"
    STRING = "STRING"
    UTC_DATETIME = "UTC_DATETIME"


@dataclass
class ColumnDescription:
    name: str
    type: DataType = DataType.UNSPECIFIED
    primary_key: bool = False


@dataclass
class TableDescription:
    name: str
    columns: list[ColumnDescription] = field(default_factory=list)


def describe_column(name: str) -> ColumnDescription:
    # Only system columns have a known type; everything else is inferred downstream
    if name == ID_FIELD:
        return ColumnDescription(name, DataType.STRING, primary_key=True)
    if name == CREATION_TIME_FIELD:
        return ColumnDescription(name, DataType.UTC_DATETIME)
    return ColumnDescription(name)


def describe_tables(columns: Mapping[str, Sequence[str]]) -> list[TableDescription]:
    """Describe every table, sorted by name."""
    return [
        TableDescription(
            name=table_name,
            columns=[describe_column(column) for column in column_names],
        )
        for table_name, column_names in sorted(columns.items())
    ]
