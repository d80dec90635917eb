"""
State store -- last observed metadata per flow id, one mapping per instance.

The reconciler only sees the StateStore interface, so the JSON files
can be swapped for another backend without touching the diff logic.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from ..models import StateEntry
from ..naming import state_file_name

logger = logging.getLogger("flowsync.sync.state")

State = dict[str, StateEntry]


class StateStore(ABC):
    """Persistence for per-instance recorded state."""

    @abstractmethod
    def load(self, instance: str) -> State:
        """Return the last saved state, or an empty mapping."""

    @abstractmethod
    def save(self, instance: str, state: State) -> None:
        """Replace the saved state for ``instance``."""

    def state_file_name(self, instance: str) -> str:
        """Repository-relative path of the state artifact to commit."""
        return state_file_name(instance)


class JsonStateStore(StateStore):
    """``.flow_state_<instance>.json`` files at the repository root."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, instance: str) -> Path:
        return self.root / state_file_name(instance)

    def load(self, instance: str) -> State:
        state_file = self.path_for(instance)
        if not state_file.exists():
            return {}
        try:
            raw = json.loads(state_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Failed to load state for %s, starting fresh: %s",
                instance, exc,
            )
            return {}
        if not isinstance(raw, dict):
            logger.warning("State file for %s is not a mapping, ignoring", instance)
            return {}

        state: State = {}
        for flow_id, entry in raw.items():
            try:
                state[flow_id] = StateEntry.model_validate(entry or {})
            except ValidationError as exc:
                logger.warning(
                    "Dropping unreadable state entry %s for %s: %s",
                    flow_id, instance, exc,
                )
        return state

    def save(self, instance: str, state: State) -> None:
        state_file = self.path_for(instance)
        state_file.parent.mkdir(parents=True, exist_ok=True)
        data = {flow_id: entry.to_disk() for flow_id, entry in state.items()}
        tmp = state_file.with_name(state_file.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(state_file)


class MemoryStateStore(StateStore):
    """In-process store, for dry runs and tests."""

    def __init__(self):
        self._states: dict[str, State] = {}

    def load(self, instance: str) -> State:
        return {k: v.model_copy() for k, v in self._states.get(instance, {}).items()}

    def save(self, instance: str, state: State) -> None:
        self._states[instance] = {k: v.model_copy() for k, v in state.items()}
