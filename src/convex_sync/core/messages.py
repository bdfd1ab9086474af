"""
Update messages - the vocabulary the sync engine emits.

Each message maps to exactly one outbound record:
- LogMessage        -> log entry
- RowOperation      -> record operation
- CheckpointMessage -> checkpoint operation carrying the encoded State
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic_core import PydanticSerializationError

from convex_sync.core.state import State
from convex_sync.errors import SerializationFailure


class LogLevel(str, Enum):
    """Severity of a log entry sent to the destination."""

    INFO = "INFO"
    WARNING = "WARNING"
    SEVERE = "SEVERE"


class OpType(str, Enum):
    """Row operation applied by the destination."""

    UPSERT = "UPSERT"
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"


@dataclass(frozen=True)
class LogMessage:
    level: LogLevel
    message: str


@dataclass(frozen=True)
class RowOperation:
    """A single row-level operation on a destination table."""

    table: str
    op_type: OpType
    row: dict[str, Any] = field(default_factory=dict)
    schema_name: str | None = None


@dataclass(frozen=True)
class CheckpointMessage:
    state: State


UpdateMessage = Union[LogMessage, RowOperation, CheckpointMessage]


def encode_state(state: State) -> str:
    """
    Encode a checkpoint state for the wire.

    Raises:
        SerializationFailure: if the state cannot be encoded. A checkpoint is
            never dropped, the whole sync fails instead.
    """
    try:
        return state.to_json()
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationFailure(f"Couldn't serialize a checkpoint: {e}") from e


def encode_message(message: UpdateMessage) -> dict[str, Any]:
    """Convert an update message to its outbound wire representation."""
    if isinstance(message, LogMessage):
        return {
            "log_entry": {
                "level": message.level.value,
                "message": message.message,
            }
        }

    if isinstance(message, RowOperation):
        return {
            "operation": {
                "record": {
                    "schema_name": message.schema_name,
                    "table_name": message.table,
                    "type": message.op_type.value,
                    "data": dict(message.row),
                }
            }
        }

    if isinstance(message, CheckpointMessage):
        return {
            "operation": {
                "checkpoint": {
                    "state_json": encode_state(message.state),
                }
            }
        }

    raise TypeError(f"Unknown update message: {message!r}")
