"""
Sync Engine - Two-phase change data capture.

Produces the ordered stream of update messages for one sync invocation:
- Initial sync: copies a consistent snapshot page by page
- Delta sync: replays the change log from the last cursor
- Dispatcher: resumes into the right phase from the last checkpoint

Both phases are async generators: each message is produced right before it
is consumed, and the only suspension points are the source calls. Source
errors end the stream after every message already produced.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from convex_sync.connectors.source import Source, SnapshotValue
from convex_sync.core.convert import ID_FIELD, to_row
from convex_sync.core.messages import (
    CheckpointMessage,
    LogLevel,
    LogMessage,
    OpType,
    RowOperation,
    UpdateMessage,
)
from convex_sync.core.state import DeltaUpdates, InitialSync, State
from convex_sync.errors import MissingCursor


logger = logging.getLogger(__name__)


def sync(source: Source, state: State | None) -> AsyncIterator[UpdateMessage]:
    """
    Return the update stream resuming from `state`.

    No state starts a fresh lineage with truncate tracking enabled. Delta
    checkpoints pass their `tables_seen` through unchanged, so legacy states
    without tracking keep it disabled.
    """
    if state is None:
        return initial_sync(source, tables_seen=frozenset())

    checkpoint = state.checkpoint
    if isinstance(checkpoint, InitialSync):
        return initial_sync(
            source,
            snapshot=checkpoint.snapshot,
            cursor=checkpoint.cursor,
            tables_seen=state.tables_seen,
        )
    return delta_sync(source, checkpoint.cursor, tables_seen=state.tables_seen)


class _TruncateTracker:
    """Tables already truncated in this lineage, or None when untracked."""

    def __init__(self, tables_seen: frozenset[str] | None) -> None:
        self._seen: set[str] | None = None if tables_seen is None else set(tables_seen)

    def first_sight(self, table: str) -> bool:
        """Record `table`, returning True the first time it is seen."""
        if self._seen is None or table in self._seen:
            return False
        self._seen.add(table)
        return True

    def snapshot(self) -> frozenset[str] | None:
        return None if self._seen is None else frozenset(self._seen)


def _row_operations(
    value: SnapshotValue,
    tracker: _TruncateTracker,
    op_type: OpType,
) -> list[RowOperation]:
    operations = []
    if tracker.first_sight(value.table):
        operations.append(RowOperation(value.table, OpType.TRUNCATE, {}))
    if op_type == OpType.DELETE:
        row = {ID_FIELD: value.fields.get(ID_FIELD)}
    else:
        row = to_row(value.fields)
    operations.append(RowOperation(value.table, op_type, row))
    return operations


async def initial_sync(
    source: Source,
    snapshot: int | None = None,
    cursor: str | None = None,
    tables_seen: frozenset[str] | None = frozenset(),
) -> AsyncIterator[UpdateMessage]:
    """
    Perform (or resume) an initial synchronization.

    Args:
        source: Source to copy from
        snapshot: Snapshot timestamp of the sync being resumed
        cursor: Continuation cursor of the sync being resumed
        tables_seen: Tables already truncated, None to disable truncation
    """
    if snapshot is None and cursor is None:
        yield LogMessage(LogLevel.INFO, f"Starting an initial sync from {source}")
    else:
        yield LogMessage(
            LogLevel.INFO,
            f"Resuming an initial sync from {source} "
            f"(snapshot {snapshot}, cursor {cursor})",
        )

    tracker = _TruncateTracker(tables_seen)
    pages = 0

    while True:
        response = await source.list_snapshot(snapshot, cursor, None)
        if response.has_more and response.cursor is None:
            raise MissingCursor("list_snapshot")
        pages += 1

        for value in response.values:
            for operation in _row_operations(value, tracker, OpType.UPSERT):
                yield operation

        logger.debug(
            f"Initial sync page {pages}: {len(response.values)} documents "
            f"(snapshot {response.snapshot})"
        )

        if not response.has_more:
            break

        snapshot = response.snapshot
        cursor = response.cursor
        yield CheckpointMessage(
            State.create(
                InitialSync(snapshot=snapshot, cursor=cursor),
                tracker.snapshot(),
            )
        )

    # The final snapshot is where the change log has to be read from
    yield CheckpointMessage(
        State.create(DeltaUpdates(cursor=response.snapshot), tracker.snapshot())
    )
    yield LogMessage(LogLevel.INFO, "Initial sync successful")


async def delta_sync(
    source: Source,
    cursor: int | str,
    tables_seen: frozenset[str] | None = None,
) -> AsyncIterator[UpdateMessage]:
    """
    Apply the changes made after an initial or delta sync completed.

    Drains the change log currently available and returns; it never waits
    for new changes.
    """
    yield LogMessage(
        LogLevel.INFO,
        f"Starting to apply changes from {source} (cursor {cursor})",
    )

    tracker = _TruncateTracker(tables_seen)
    has_more = True

    while has_more:
        response = await source.document_deltas(cursor, None)
        if response.cursor is None:
            raise MissingCursor("document_deltas")

        for value in response.values:
            op_type = OpType.DELETE if value.deleted else OpType.UPSERT
            for operation in _row_operations(value, tracker, op_type):
                yield operation

        cursor = response.cursor
        has_more = response.has_more

        # A single document_deltas page is always self-consistent
        yield CheckpointMessage(
            State.create(DeltaUpdates(cursor=cursor), tracker.snapshot())
        )

    yield LogMessage(LogLevel.INFO, "Changes applied")
