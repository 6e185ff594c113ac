"""
Command Registry — Maps command prefixes to handlers.

Responsibility:
- Normalize and store handlers keyed by ``--``-prefixed command names
- Reject names colliding with the native command vocabulary
- Resolve a full command string to the longest matching prefix
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union

from observability.diagnostics import Diagnostics
from shared.command_string import COMMAND_PREFIX, command_remainder, matches_prefix

logger = logging.getLogger(__name__)

NATIVE_COMMAND_KEYWORDS = frozenset({
    "show-modal",
    "close",
    "toggle-popover",
    "play-pause",
    "play",
    "pause",
    "toggle-muted",
    "show-picker",
})


class CommandHandler(Protocol):
    """Leaf handler: receives a CommandContext, raises to signal failure.

    May return None, an ExecutionOutcome, or an awaitable of either.
    """

    def __call__(self, context: Any) -> Union[None, Any, Awaitable[Any]]:
        ...


@dataclass(frozen=True)
class ResolvedCommand:
    prefix: str
    handler: Callable[..., Any]
    remainder: str


class CommandRegistry:
    """Registry mapping command prefixes to their handlers."""

    def __init__(self, diagnostics: Diagnostics | None = None) -> None:
        self.diagnostics = diagnostics or Diagnostics()
        self._commands: dict[str, Callable[..., Any]] = {}
        self._sorted_prefixes: list[str] = []

    def register(self, name: str, handler: CommandHandler) -> bool:
        """Register a handler. Returns False when the name is rejected."""
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Command name must be a non-empty string")
        if not callable(handler):
            raise ValueError(f"Command handler for '{name}' must be callable")

        trimmed = name.strip()
        normalized = trimmed
        if not normalized.startswith(COMMAND_PREFIX):
            normalized = f"{COMMAND_PREFIX}{normalized}"
            self.diagnostics.warn(
                f"Command '{trimmed}' registered without '{COMMAND_PREFIX}' prefix; registered as '{normalized}'",
                command=normalized,
            )

        if normalized[len(COMMAND_PREFIX):] in NATIVE_COMMAND_KEYWORDS:
            self.diagnostics.error(
                f"Cannot register custom command '{normalized}': conflicts with native command "
                f"'{normalized[len(COMMAND_PREFIX):]}'",
                command=normalized,
                recovery="Choose a name that does not collide with a native command",
            )
            return False

        if normalized in self._commands:
            self.diagnostics.warn(
                f"Command '{normalized}' is already registered and will be overwritten",
                command=normalized,
                recovery="Use a different name or make sure the overwrite is intentional",
            )

        self._commands[normalized] = handler
        self._sorted_prefixes = sorted(self._commands, key=len, reverse=True)
        logger.debug("Registered command: %s → %s", normalized, getattr(handler, "__name__", type(handler).__name__))
        return True

    def unregister(self, name: str) -> bool:
        key = name.strip()
        if not key.startswith(COMMAND_PREFIX):
            key = f"{COMMAND_PREFIX}{key}"
        if self._commands.pop(key, None) is None:
            return False
        self._sorted_prefixes = sorted(self._commands, key=len, reverse=True)
        return True

    def resolve(self, command: str) -> ResolvedCommand | None:
        """Resolve a command string to the longest registered prefix. Returns None if not found."""
        for prefix in self._sorted_prefixes:
            if matches_prefix(command, prefix):
                return ResolvedCommand(
                    prefix=prefix,
                    handler=self._commands[prefix],
                    remainder=command_remainder(command, prefix),
                )
        return None

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    @property
    def registered_commands(self) -> list[str]:
        """All registered prefixes, longest first."""
        return list(self._sorted_prefixes)

    def clear(self) -> None:
        self._commands.clear()
        self._sorted_prefixes = []
