"""
Source capability - the read API the sync engine consumes.

A Source exposes three endpoints of a Convex deployment:
- json_schemas: table name -> JSON schema of its documents
- list_snapshot: paginated, point-in-time read of every document
- document_deltas: paginated read of the change log from a cursor
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Mapping

from convex_sync.core.convert import SYSTEM_COLUMNS
from convex_sync.errors import SourceError


@dataclass
class SnapshotValue:
    """
    A document returned by the snapshot and delta endpoints.

    `fields` can contain system fields that are not part of the document;
    every `_`-prefixed field other than `_id` and `_creationTime` is ignored
    downstream. When `deleted` is set, `fields` only holds the identity.
    """

    table: str
    deleted: bool = False
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "SnapshotValue":
        if not isinstance(data, dict):
            raise SourceError(f"Expected a document object, got {type(data).__name__}")
        fields = dict(data)
        table = fields.pop("_table", None)
        if not isinstance(table, str):
            raise SourceError("Document is missing its `_table` field")
        deleted = fields.pop("_deleted", False)
        if not isinstance(deleted, bool):
            raise SourceError("Document `_deleted` field must be a boolean")
        return cls(table=table, deleted=deleted, fields=fields)


@dataclass
class ListSnapshotResponse:
    """One page of a point-in-time snapshot read."""

    values: list[SnapshotValue]
    # Pass back as `snapshot` on subsequent calls
    snapshot: int
    # Exclusive continuation cursor for the next page
    cursor: str | None
    has_more: bool

    @classmethod
    def from_dict(cls, data: Any) -> "ListSnapshotResponse":
        body = _expect_object(data, "list_snapshot")
        snapshot = body.get("snapshot")
        if isinstance(snapshot, bool) or not isinstance(snapshot, int):
            raise SourceError("list_snapshot response is missing an integer `snapshot`")
        cursor = body.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            # Cursors are opaque; keep numeric ones in string form
            cursor = str(cursor)
        return cls(
            values=_parse_values(body, "list_snapshot"),
            snapshot=snapshot,
            cursor=cursor,
            has_more=_parse_has_more(body, "list_snapshot"),
        )


@dataclass
class DocumentDeltasResponse:
    """One page of the change log, in timestamp order."""

    values: list[SnapshotValue]
    cursor: int | None
    has_more: bool

    @classmethod
    def from_dict(cls, data: Any) -> "DocumentDeltasResponse":
        body = _expect_object(data, "document_deltas")
        cursor = body.get("cursor")
        if cursor is not None and (isinstance(cursor, bool) or not isinstance(cursor, int)):
            raise SourceError("document_deltas response `cursor` must be an integer")
        return cls(
            values=_parse_values(body, "document_deltas"),
            cursor=cursor,
            has_more=_parse_has_more(body, "document_deltas"),
        )


def _expect_object(data: Any, endpoint: str) -> Mapping[str, Any]:
    if not isinstance(data, dict):
        raise SourceError(f"{endpoint} response must be a JSON object")
    return data


def _parse_values(body: Mapping[str, Any], endpoint: str) -> list[SnapshotValue]:
    values = body.get("values")
    if not isinstance(values, list):
        raise SourceError(f"{endpoint} response is missing its `values` list")
    return [SnapshotValue.from_dict(value) for value in values]


def _parse_has_more(body: Mapping[str, Any], endpoint: str) -> bool:
    has_more = body.get("hasMore")
    if not isinstance(has_more, bool):
        raise SourceError(f"{endpoint} response is missing a boolean `hasMore`")
    return has_more


class Source(abc.ABC):
    """
    The APIs exposed by a Convex deployment for streaming export.

    Implementations raise SourceError (or SourceUnavailable) on failure;
    the sync engine propagates those without retrying.
    """

    @abc.abstractmethod
    async def json_schemas(self) -> dict[str, Any]:
        """Table name -> JSON schema (an object, or a boolean for empty tables)."""

    @abc.abstractmethod
    async def list_snapshot(
        self,
        snapshot: int | None,
        cursor: str | None,
        table_name: str | None = None,
    ) -> ListSnapshotResponse:
        """
        Read one page of a consistent snapshot.

        Every page requested with the same `snapshot` observes the database
        as of that snapshot. Omitting `cursor` starts from the beginning.
        """

    @abc.abstractmethod
    async def document_deltas(
        self,
        cursor: int | str,
        table_name: str | None = None,
    ) -> DocumentDeltasResponse:
        """Read one page of the change log after `cursor`."""

    async def get_columns(self) -> dict[str, list[str]]:
        """Table name -> exported column names, system columns first."""
        schemas = await self.json_schemas()

        columns: dict[str, list[str]] = {}
        for table_name, table_schema in schemas.items():
            if isinstance(table_schema, bool):
                # Empty table
                user_columns: list[str] = []
            elif isinstance(table_schema, dict) and _is_object_schema(table_schema):
                user_columns = [
                    key
                    for key in table_schema.get("properties", {})
                    if not key.startswith("_")
                ]
            else:
                raise SourceError(
                    f"Unexpected non-object validator for a document in {table_name}"
                )
            columns[table_name] = [*SYSTEM_COLUMNS, *user_columns]

        return columns


def _is_object_schema(schema: Mapping[str, Any]) -> bool:
    properties = schema.get("properties")
    if properties is not None and not isinstance(properties, dict):
        return False
    return schema.get("type") == "object" or properties is not None
