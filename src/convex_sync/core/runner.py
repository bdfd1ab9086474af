"""
Sync Runner - Drives one sync invocation end to end.

Consumes the engine's update stream and:
- Writes each encoded message as a JSON line to the sink
- Forwards log messages to the package logger
- Persists every checkpoint once its line has been written
- Keeps statistics for the summary
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TextIO

from convex_sync.connectors.source import Source
from convex_sync.core.engine import sync
from convex_sync.core.messages import (
    CheckpointMessage,
    LogLevel,
    LogMessage,
    OpType,
    RowOperation,
    UpdateMessage,
    encode_message,
)
from convex_sync.core.state import State, StateStore


logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.SEVERE: logging.ERROR,
}


@dataclass
class SyncStats:
    """Statistics for a sync invocation."""

    upserts: int = 0
    deletes: int = 0
    truncates: int = 0
    checkpoints: int = 0
    tables: set[str] = field(default_factory=set)
    last_state: State | None = None
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def rows_processed(self) -> int:
        return self.upserts + self.deletes

    @property
    def duration_seconds(self) -> float:
        """Duration in seconds."""
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        if self.start_time:
            return time.time() - self.start_time
        return 0.0

    @property
    def rows_per_second(self) -> float:
        """Processing rate."""
        duration = self.duration_seconds
        if duration > 0:
            return self.rows_processed / duration
        return 0.0

    def record(self, message: UpdateMessage) -> None:
        if isinstance(message, RowOperation):
            self.tables.add(message.table)
            if message.op_type == OpType.TRUNCATE:
                self.truncates += 1
            elif message.op_type == OpType.DELETE:
                self.deletes += 1
            else:
                self.upserts += 1
        elif isinstance(message, CheckpointMessage):
            self.checkpoints += 1
            self.last_state = message.state


# Progress callback type
ProgressCallback = Callable[[SyncStats], None]


class SyncRunner:
    """
    Run a sync from the stored checkpoint and forward the update stream.

    Example:
        async with create_client(settings) as source:
            runner = SyncRunner(source, StateStore(path), sys.stdout)
            stats = await runner.run()
    """

    def __init__(
        self,
        source: Source,
        store: StateStore | None,
        sink: TextIO,
    ) -> None:
        """
        Initialize the runner.

        Args:
            source: Source to read from
            store: Where checkpoints are persisted (None to skip persistence)
            sink: Text stream receiving one JSON object per message
        """
        self.source = source
        self.store = store
        self.sink = sink

    async def run(
        self,
        state: State | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncStats:
        """
        Drain the update stream.

        Args:
            state: State to resume from (defaults to the stored one)
            on_progress: Optional callback invoked after each checkpoint

        Returns:
            SyncStats for the invocation

        Raises:
            SyncError: the first error of the stream, after every earlier
                message has been forwarded
        """
        if state is None and self.store is not None:
            state = self.store.load()

        stats = SyncStats(start_time=time.time())
        try:
            async for message in sync(self.source, state):
                self._forward(message)
                stats.record(message)
                if isinstance(message, CheckpointMessage) and on_progress:
                    on_progress(stats)
        finally:
            stats.end_time = time.time()

        return stats

    def _forward(self, message: UpdateMessage) -> None:
        # Encoded before anything is written or persisted
        line = json.dumps(encode_message(message), default=str)
        self.sink.write(line + "\n")
        self.sink.flush()

        if isinstance(message, LogMessage):
            logger.log(_LOG_LEVELS[message.level], message.message)
        elif isinstance(message, CheckpointMessage) and self.store is not None:
            self.store.save(message.state)
