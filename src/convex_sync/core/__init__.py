"""Core sync engine components for Convex Sync."""

from convex_sync.core.engine import delta_sync, initial_sync, sync
from convex_sync.core.messages import (
    CheckpointMessage,
    LogLevel,
    LogMessage,
    OpType,
    RowOperation,
    UpdateMessage,
    encode_message,
)
from convex_sync.core.runner import SyncRunner, SyncStats
from convex_sync.core.state import (
    DeltaUpdates,
    InitialSync,
    State,
    StateStore,
    deserialize_state,
    load_state,
    serialize_state,
)

__all__ = [
    "sync",
    "initial_sync",
    "delta_sync",
    "CheckpointMessage",
    "LogLevel",
    "LogMessage",
    "OpType",
    "RowOperation",
    "UpdateMessage",
    "encode_message",
    "SyncRunner",
    "SyncStats",
    "DeltaUpdates",
    "InitialSync",
    "State",
    "StateStore",
    "deserialize_state",
    "load_state",
    "serialize_state",
]
