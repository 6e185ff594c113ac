"""Per-activation execution context handed to command handlers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable

from nodes import attributes as attrs
from nodes.tree import Node
from shared.models import ChainDescriptor, CommandState, ExecutionOutcome


@dataclass
class CommandContext:
    """What a handler sees. ``source`` is None for chain-originated executions."""

    source: Node | None
    target: Node
    full_command: str
    prefix: str
    params: tuple[str, ...]
    get_targets: Callable[[], list[Node]]
    follow_ups: list[tuple[ChainDescriptor, CommandState]] = field(default_factory=list)
    result: ExecutionOutcome | None = None

    @property
    def data(self) -> dict[str, str]:
        """The source's ``data-*`` attributes (pipeline-step auxiliary data lands here)."""
        return self.source.data if self.source is not None else {}

    def update_reflected_state(self, targets: list[Node] | None = None) -> None:
        """Mirror target visibility onto the source's aria-expanded/aria-pressed."""
        if self.source is None:
            return
        nodes = targets if targets is not None else self.get_targets()
        expanded = "true" if any(not node.hidden for node in nodes) else "false"
        self.source.set_attribute(attrs.ARIA_EXPANDED, expanded)
        if self.source.has_attribute(attrs.ARIA_PRESSED):
            self.source.set_attribute(attrs.ARIA_PRESSED, expanded)

    def schedule_follow_up(self, command: str, target: str | None = None, state: CommandState = "active") -> None:
        """Queue a command to run after this one finishes (before the next activation)."""
        descriptor = ChainDescriptor(
            command=command,
            target=target or self.target.id or None,
            once=state in ("once", "completed"),
        )
        self.follow_ups.append((descriptor, state))

    def for_target(self, target: Node) -> CommandContext:
        return replace(self, target=target, follow_ups=self.follow_ups)

    def with_result(self, result: ExecutionOutcome) -> CommandContext:
        return replace(self, result=result, follow_ups=self.follow_ups)
