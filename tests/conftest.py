"""Shared fixtures: in-memory source and destination."""

from __future__ import annotations

import uuid
from typing import Any, AsyncIterator, Callable, Iterable

import pytest

from convex_sync.connectors.source import (
    DocumentDeltasResponse,
    ListSnapshotResponse,
    SnapshotValue,
    Source,
)
from convex_sync.core.messages import (
    CheckpointMessage,
    LogMessage,
    OpType,
    RowOperation,
    UpdateMessage,
)
from convex_sync.core.state import State


class FakeSource(Source):
    """A deployment kept in memory, with a change log of every mutation."""

    SNAPSHOT_PAGE_SIZE = 10
    DELTAS_PAGE_SIZE = 5

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.changelog: list[SnapshotValue] = []
        self.calls: list[tuple[str, Any, Any]] = []

    @classmethod
    def seeded(cls, tables: Iterable[str] = ("table1", "table2", "table3"), rows: int = 25) -> "FakeSource":
        source = cls()
        for table_name in tables:
            for i in range(rows):
                source.insert(
                    table_name,
                    {"name": f"Document {i} of {table_name}", "index": i},
                )
        return source

    def __str__(self) -> str:
        return "fake_source"

    async def __aenter__(self) -> "FakeSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    def insert(self, table_name: str, value: dict[str, Any]) -> None:
        assert "_id" not in value, "ID specified while inserting a new row"
        document = {**value, "_id": str(uuid.uuid4()), "_creationTime": 0}
        self.tables.setdefault(table_name, []).append(document)
        self.changelog.append(SnapshotValue(table=table_name, fields=dict(document)))

    def patch(self, table_name: str, index: int, changed_fields: dict[str, Any]) -> None:
        document = self.tables[table_name][index]
        for key, value in changed_fields.items():
            assert not key.startswith("_"), "Trying to set a system field"
            document[key] = value
        self.changelog.append(SnapshotValue(table=table_name, fields=dict(document)))

    def delete(self, table_name: str, index: int) -> None:
        document = self.tables[table_name].pop(index)
        self.changelog.append(
            SnapshotValue(table=table_name, deleted=True, fields={"_id": document["_id"]})
        )

    async def json_schemas(self) -> dict[str, Any]:
        schemas: dict[str, Any] = {}
        for table_name, rows in self.tables.items():
            if not rows:
                schemas[table_name] = False
                continue
            properties = {key: {"type": "string"} for row in rows for key in row}
            schemas[table_name] = {"type": "object", "properties": properties}
        return schemas

    async def list_snapshot(
        self,
        snapshot: int | None,
        cursor: str | None,
        table_name: str | None = None,
    ) -> ListSnapshotResponse:
        self.calls.append(("list_snapshot", snapshot, cursor))
        assert table_name is None, "Query by table is not supported by the fake"
        assert snapshot is None or snapshot == len(self.changelog), "Unexpected snapshot value"

        page = int(cursor) if cursor is not None else 0
        documents = [
            SnapshotValue(table=table, fields=dict(document))
            for table, documents in self.tables.items()
            for document in documents
        ]
        start = page * self.SNAPSHOT_PAGE_SIZE
        values = documents[start:start + self.SNAPSHOT_PAGE_SIZE]

        return ListSnapshotResponse(
            values=values,
            snapshot=len(self.changelog),
            cursor=str(page + 1),
            has_more=len(values) == self.SNAPSHOT_PAGE_SIZE,
        )

    async def document_deltas(
        self,
        cursor: int | str,
        table_name: str | None = None,
    ) -> DocumentDeltasResponse:
        self.calls.append(("document_deltas", cursor, None))
        assert table_name is None, "Per-table log not supported in fake"

        start = int(cursor)
        values = self.changelog[start:start + self.DELTAS_PAGE_SIZE]

        return DocumentDeltasResponse(
            values=list(values),
            cursor=start + len(values),
            has_more=len(values) == self.DELTAS_PAGE_SIZE,
        )


class ScriptedSource(Source):
    """Replays a fixed list of responses (or exceptions), one per call."""

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, Any, Any]] = []

    def __str__(self) -> str:
        return "scripted_source"

    async def __aenter__(self) -> "ScriptedSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    def _next(self) -> Any:
        assert self.responses, "Unexpected request after the last page"
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def json_schemas(self) -> dict[str, Any]:
        return self._next()

    async def list_snapshot(self, snapshot, cursor, table_name=None) -> ListSnapshotResponse:
        self.calls.append(("list_snapshot", snapshot, cursor))
        return self._next()

    async def document_deltas(self, cursor, table_name=None) -> DocumentDeltasResponse:
        self.calls.append(("document_deltas", cursor, None))
        return self._next()


class FakeDestination:
    """Applies row operations the way a destination warehouse would."""

    def __init__(self) -> None:
        self.logs: list[LogMessage] = []
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.operations: list[RowOperation] = []
        self.checkpoint: State | None = None

    def has_log(self, substring: str) -> bool:
        return any(substring in log.message for log in self.logs)

    def apply(self, message: UpdateMessage) -> None:
        if isinstance(message, LogMessage):
            self.logs.append(message)
        elif isinstance(message, CheckpointMessage):
            self.checkpoint = message.state
        else:
            self.operations.append(message)
            assert message.schema_name is None, "Schemas not supported by the fake"
            table = self.tables.setdefault(message.table, [])

            if message.op_type == OpType.TRUNCATE:
                table.clear()
                return

            row_id = message.row["_id"]
            position = next(
                (i for i, row in enumerate(table) if row["_id"] == row_id),
                None,
            )
            if message.op_type == OpType.UPSERT:
                if position is None:
                    table.append(message.row)
                else:
                    table[position] = message.row
            elif message.op_type == OpType.DELETE:
                assert position is not None, "Could not find the row to delete"
                del table[position]
            else:
                raise AssertionError(f"Operation not supported by the fake: {message.op_type}")

    def apply_all(self, messages: Iterable[UpdateMessage]) -> None:
        for message in messages:
            self.apply(message)

    async def receive(self, stream: AsyncIterator[UpdateMessage]) -> None:
        async for message in stream:
            self.apply(message)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource.seeded()


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    return FakeSource.seeded


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def make_destination() -> Callable[[], FakeDestination]:
    return FakeDestination


@pytest.fixture
def scripted_source() -> Callable[[list[Any]], ScriptedSource]:
    return ScriptedSource
