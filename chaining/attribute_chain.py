"""
Attribute-declared chains.

A source node may declare follow-up commands in four attributes:
``data-and-then`` (always), ``data-after-success``, ``data-after-error`` and
``data-after-complete``. Each holds a comma-separated list (``\\,`` for a
literal comma). All follow-ups target ``data-then-target`` or, by default,
the node the finished command targeted.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from nodes import attributes as attrs
from nodes.tree import Node
from observability.diagnostics import Diagnostics
from shared.command_string import split_command_list
from shared.models import ChainCondition, ChainDescriptor, ExecutionOutcome

logger = logging.getLogger(__name__)

DescriptorRunner = Callable[[ChainDescriptor, Node | None], Awaitable[Any]]

# Declaration order is execution order.
CHAIN_ATTRIBUTES: tuple[tuple[str, ChainCondition], ...] = (
    (attrs.AND_THEN, "always"),
    (attrs.AFTER_SUCCESS, "success"),
    (attrs.AFTER_ERROR, "error"),
    (attrs.AFTER_COMPLETE, "complete"),
)


class AttributeChainResolver:
    """Builds and runs chain descriptors from a source node's attributes."""

    def __init__(self, run_descriptor: DescriptorRunner, diagnostics: Diagnostics):
        self.run_descriptor = run_descriptor
        self.diagnostics = diagnostics

    def collect(self, source: Node, outcome: ExecutionOutcome, primary_target: Node | None) -> list[ChainDescriptor]:
        """Descriptors that fire for ``outcome``; read fresh from the node every time."""
        declared = [
            (condition, split_command_list(source.get_attribute(attribute)))
            for attribute, condition in CHAIN_ATTRIBUTES
        ]
        if not any(commands for _, commands in declared):
            return []

        target_id = (source.get_attribute(attrs.THEN_TARGET) or "").strip()
        if not target_id:
            target_id = primary_target.id if primary_target is not None else ""
        if not target_id:
            self.diagnostics.warn(
                "Chained commands need a target with an id; skipping attribute chain",
                command=source.get_attribute(attrs.COMMAND),
                recovery=f"Give the target an id or set {attrs.THEN_TARGET}",
            )
            return []

        descriptors: list[ChainDescriptor] = []
        for condition, commands in declared:
            for command in commands:
                descriptor = ChainDescriptor(command=command, target=target_id, condition=condition)
                if descriptor.matches(outcome):
                    descriptors.append(descriptor)
        return descriptors

    async def run(self, source: Node, outcome: ExecutionOutcome, primary_target: Node | None) -> int:
        """Hand matching descriptors to the runner in declaration order. Returns the count."""
        descriptors = self.collect(source, outcome, primary_target)
        for descriptor in descriptors:
            logger.debug("Attribute chain: %s → %s (%s)", descriptor.command, descriptor.target, descriptor.condition)
            await self.run_descriptor(descriptor, primary_target)
        return len(descriptors)
