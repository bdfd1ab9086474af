"""
Checkpoint State - Resume position for sync operations.

A State is emitted to the destination every time the engine checkpoints and
handed back on the next invocation. It records:
- Which phase the sync is in (initial snapshot or delta updates)
- The pagination position within that phase
- The tables already truncated in this lineage (when tracked)

Decoding is strict: unknown keys, unknown checkpoint tags and wrong value
types are rejected rather than resumed from.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    field_serializer,
    field_validator,
)

from convex_sync.errors import InvalidState


# The value currently written to the `version` field of State
CHECKPOINT_VERSION = 1


class InitialSync(BaseModel):
    """Checkpoint emitted while the snapshot is being copied."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    snapshot: StrictInt | None = None
    cursor: StrictStr | None = None


class DeltaUpdates(BaseModel):
    """Checkpoint emitted once the initial sync has completed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cursor: Union[StrictInt, StrictStr]


Checkpoint = Union[InitialSync, DeltaUpdates]

_CHECKPOINT_TAGS: dict[str, type[BaseModel]] = {
    "InitialSync": InitialSync,
    "DeltaUpdates": DeltaUpdates,
}


class State(BaseModel):
    """Complete sync position for persistence."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Not branched on yet; kept so older checkpoints stay readable
    version: StrictInt | None = None
    checkpoint: Checkpoint = Field(default_factory=InitialSync)
    # None means truncate tracking is disabled for this lineage
    tables_seen: frozenset[StrictStr] | None = None

    @classmethod
    def create(
        cls,
        checkpoint: Checkpoint,
        tables_seen: frozenset[str] | None = None,
    ) -> "State":
        """Create a state stamped with the current checkpoint version."""
        return cls(
            version=CHECKPOINT_VERSION,
            checkpoint=checkpoint,
            tables_seen=tables_seen,
        )

    @field_validator("checkpoint", mode="before")
    @classmethod
    def decode_checkpoint(cls, value: Any) -> Any:
        """Decode the externally tagged checkpoint object."""
        if isinstance(value, (InitialSync, DeltaUpdates)):
            return value
        if not isinstance(value, dict):
            raise ValueError("checkpoint must be an object")
        if len(value) != 1:
            raise ValueError(
                f"checkpoint must have exactly one variant, got {sorted(value)}"
            )
        tag, payload = next(iter(value.items()))
        model = _CHECKPOINT_TAGS.get(tag)
        if model is None:
            raise ValueError(f"unknown checkpoint variant: {tag}")
        if not isinstance(payload, dict):
            raise ValueError(f"{tag} payload must be an object")
        return model.model_validate(payload)

    @field_serializer("checkpoint")
    def encode_checkpoint(self, checkpoint: Checkpoint) -> dict[str, Any]:
        return {type(checkpoint).__name__: checkpoint.model_dump(mode="json")}

    @field_serializer("tables_seen")
    def encode_tables_seen(self, tables_seen: frozenset[str] | None) -> list[str] | None:
        if tables_seen is None:
            return None
        return sorted(tables_seen)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = self.model_dump(mode="json")
        if self.tables_seen is None:
            del data["tables_seen"]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> "State":
        """Strictly decode a state object."""
        if not isinstance(data, dict):
            raise InvalidState("State must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidState(f"Invalid checkpoint state: {e}") from e

    @classmethod
    def from_json(cls, text: str | bytes) -> "State":
        return cls.from_dict(_parse_json(text))

    def describe(self) -> str:
        """Short human readable position, used in log lines."""
        checkpoint = self.checkpoint
        if isinstance(checkpoint, InitialSync):
            return f"snapshot {checkpoint.snapshot}, cursor {checkpoint.cursor}"
        return f"cursor {checkpoint.cursor}"


def _parse_json(text: str | bytes) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidState(f"Checkpoint state is not valid JSON: {e}") from e


def serialize_state(state: State) -> bytes:
    """Encode a state to its persisted JSON form."""
    return state.to_json().encode("utf-8")


def deserialize_state(data: str | bytes) -> State:
    """Decode a persisted state, raising InvalidState on any schema violation."""
    return State.from_json(data)


def load_state(text: str | bytes | None) -> State | None:
    """
    Decode the state handed back by the caller.

    A missing, blank or empty-object state means no previous sync: the
    caller starts a fresh lineage with truncate tracking enabled.
    """
    if text is None or not text.strip():
        return None
    data = _parse_json(text)
    if data == {}:
        return None
    return State.from_dict(data)


class StateStore:
    """
    File persistence for the latest emitted checkpoint.

    Example:
        store = StateStore(Path(".convex-sync-state.json"))

        state = store.load()  # None on first run
        ...
        store.save(new_state)
    """

    def __init__(self, state_file: Path | str) -> None:
        self.state_file = Path(state_file)

    @property
    def exists(self) -> bool:
        return self.state_file.exists()

    def load(self) -> State | None:
        """
        Load the stored state.

        Returns None when there is no stored state. A corrupted file raises
        InvalidState instead of silently restarting the sync.
        """
        if not self.state_file.exists():
            return None
        return load_state(self.state_file.read_bytes())

    def save(self, state: State) -> None:
        """Atomically replace the stored state."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.state_file.with_name(self.state_file.name + ".tmp")
        tmp_path.write_bytes(serialize_state(state))
        os.replace(tmp_path, self.state_file)

    def clear(self) -> None:
        """Delete the stored state (for a fresh start)."""
        if self.state_file.exists():
            self.state_file.unlink()
