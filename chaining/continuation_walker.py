"""
Declarative continuation chains.

``and-then`` children of a source run after the source's command; their own
``and-then`` children run after them, each level gated on the outcome of the
level above. The walk uses an explicit stack and a depth counter, and rescans
the live tree on every activation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from nodes import attributes as attrs
from nodes.tree import Node
from observability.diagnostics import Diagnostics
from shared.command_string import normalize_command_name
from shared.models import ExecutionOutcome, condition_matches

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, str | None, Node | None], Awaitable[ExecutionOutcome]]

CONTINUATION_CONDITIONS = frozenset({"success", "error", "always"})


def _parse_delay_ms(raw: str | None) -> int:
    try:
        return max(0, int(str(raw or "0").strip() or "0"))
    except ValueError:
        return 0


def build_synthetic_source(node: Node, command: str, target_id: str, tag: str | None = None) -> Node:
    """Detached stand-in source carrying a node's ``data-*`` context."""
    synthetic = Node(tag or "button")
    synthetic.set_attribute(attrs.COMMAND, normalize_command_name(command))
    synthetic.set_attribute(attrs.COMMAND_FOR, target_id)
    for name, value in node.attributes.items():
        if name.startswith("data-") and name not in (attrs.STATE, attrs.ONCE, attrs.CONDITION, attrs.DELAY):
            synthetic.set_attribute(name, value)
    return synthetic


class ContinuationWalker:
    """Runs ``and-then`` continuation trees."""

    def __init__(
        self,
        dispatch: Dispatch,
        diagnostics: Diagnostics,
        max_depth: int = 10,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.dispatch = dispatch
        self.diagnostics = diagnostics
        self.max_depth = max_depth
        self._sleep = sleep

    async def walk(self, source: Node, outcome: ExecutionOutcome, primary_target: Node | None) -> int:
        """Execute matching continuations depth-first. Returns the number executed."""
        stack: list[tuple[Node, ExecutionOutcome, int]] = [
            (child, outcome, 0) for child in reversed(source.children_with_tag(attrs.CONTINUATION_TAG))
        ]
        executed = 0
        depth_reported = False

        while stack:
            node, parent_outcome, depth = stack.pop()

            if depth >= self.max_depth:
                if not depth_reported:
                    self.diagnostics.error(
                        f"Maximum continuation depth ({self.max_depth}) reached; stopping this chain",
                        command=node.get_attribute(attrs.COMMAND),
                        context={"depth": depth},
                        recovery="Check for continuations that keep adding nested continuations",
                    )
                    depth_reported = True
                continue

            state = (node.get_attribute(attrs.STATE) or "").strip().lower()
            if state in ("disabled", "completed"):
                continue

            condition = (node.get_attribute(attrs.CONDITION) or "always").strip().lower()
            if condition not in CONTINUATION_CONDITIONS:
                self.diagnostics.error(
                    f"Unknown continuation condition '{condition}'",
                    command=node.get_attribute(attrs.COMMAND),
                    recovery="Use success, error or always",
                )
                continue
            if not condition_matches(condition, parent_outcome):
                continue

            command = (node.get_attribute(attrs.COMMAND) or "").strip()
            target_id = (
                (node.get_attribute(attrs.COMMAND_FOR) or "").strip()
                or (source.get_attribute(attrs.COMMAND_FOR) or "").strip()
                or (primary_target.id if primary_target is not None else "")
            )
            if not command or not target_id:
                self.diagnostics.error(
                    f"<{attrs.CONTINUATION_TAG}> is missing a command or a target",
                    command=command or None,
                    recovery=f"Set '{attrs.COMMAND}' and '{attrs.COMMAND_FOR}' on the continuation",
                )
                continue

            delay_ms = _parse_delay_ms(node.get_attribute(attrs.DELAY))
            if delay_ms:
                await self._sleep(delay_ms / 1000)

            synthetic = build_synthetic_source(node, command, target_id)
            step_outcome = await self.dispatch(normalize_command_name(command), target_id, synthetic)
            executed += 1

            if node.has_attribute(attrs.ONCE):
                node.remove()
            else:
                node.set_attribute(attrs.STATE, "completed")

            nested = node.children_with_tag(attrs.CONTINUATION_TAG)
            stack.extend((child, step_outcome, depth + 1) for child in reversed(nested))

        return executed

