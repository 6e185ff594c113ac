"""In-memory lifecycle state store keyed by ``(command, target id)``."""

from __future__ import annotations

import logging

from shared.models import COMMAND_STATES, CommandState

logger = logging.getLogger(__name__)

DEFAULT_STATE: CommandState = "active"


class ExecutionStateStore:
    """Session-scoped map of command lifecycle states. ``completed`` is sticky."""

    def __init__(self) -> None:
        self._states: dict[str, CommandState] = {}

    @staticmethod
    def key(command: str, target_id: str) -> str:
        return f"{command}:{target_id}"

    def get(self, command: str, target_id: str) -> CommandState:
        return self._states.get(self.key(command, target_id), DEFAULT_STATE)

    def set(self, command: str, target_id: str, state: CommandState) -> None:
        if state not in COMMAND_STATES:
            raise ValueError(f"Unknown command state: {state!r}")
        self._states[self.key(command, target_id)] = state

    def mark_completed(self, command: str, target_id: str) -> None:
        self._states[self.key(command, target_id)] = "completed"

    def effective_state(self, command: str, target_id: str, declared: str | None = None) -> CommandState:
        """Stored state, overridden by a node-declared state unless already completed."""
        stored = self.get(command, target_id)
        if stored == "completed" or not declared:
            return stored
        declared = declared.strip().lower()
        if declared not in COMMAND_STATES:
            logger.warning("Ignoring unknown declared state %r for %s", declared, self.key(command, target_id))
            return stored
        return declared  # type: ignore[return-value]

    def snapshot(self) -> dict[str, CommandState]:
        return dict(self._states)

    def reset(self, command: str | None = None, target_id: str | None = None) -> None:
        """Clear one key, or everything when called without arguments."""
        if command is None and target_id is None:
            self._states.clear()
            return
        if command is None or target_id is None:
            raise ValueError("reset() needs both command and target_id, or neither")
        self._states.pop(self.key(command, target_id), None)
