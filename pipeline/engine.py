"""
Pipeline Engine — runs named, template-defined step sequences.

Responsibility:
- Keep inert pipeline definitions (PipelineCatalog)
- Walk steps in order, gating each on the previous executed outcome
- Dispatch every step command through the queue with a synthetic source
- Drop ``once`` steps from the catalog after their first execution

A failed step ends the run unless a later step is gated on ``error``;
in that case the run continues so the recovery step can execute.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from chaining.continuation_walker import Dispatch
from nodes import attributes as attrs
from nodes.tree import Node
from observability.diagnostics import Diagnostics, InvokerError
from observability.logger import Observability
from shared.command_string import normalize_command_name, split_command_list
from shared.models import ExecutionOutcome, PipelineDefinition, PipelineStep

logger = logging.getLogger(__name__)


class PipelineError(InvokerError):
    """Raised when a pipeline cannot run or its final outcome failed."""


class PipelineCatalog:
    """Named pipeline definitions. Callers always receive copies."""

    def __init__(self) -> None:
        self._pipelines: dict[str, PipelineDefinition] = {}

    def register(self, definition: PipelineDefinition) -> None:
        if definition.name in self._pipelines:
            logger.warning("Pipeline '%s' is already registered and will be replaced", definition.name)
        self._pipelines[definition.name] = definition
        logger.debug("Registered pipeline: %s (%d steps)", definition.name, len(definition.steps))

    def get(self, name: str) -> PipelineDefinition | None:
        definition = self._pipelines.get(name)
        return definition.model_copy(deep=True) if definition is not None else None

    def discard_step(self, name: str, step_id: str) -> bool:
        definition = self._pipelines.get(name)
        if definition is None:
            return False
        remaining = [step for step in definition.steps if step.step_id != step_id]
        if len(remaining) == len(definition.steps):
            return False
        self._pipelines[name] = definition.model_copy(update={"steps": remaining})
        return True

    def names(self) -> list[str]:
        return sorted(self._pipelines)

    def __contains__(self, name: str) -> bool:
        return name in self._pipelines

    def clear(self) -> None:
        self._pipelines.clear()


def build_step_source(step: PipelineStep, target_id: str | None) -> Node:
    """Synthetic ``pipeline-step`` node exposing the step's data as ``data-*`` attributes."""
    node = Node(attrs.PIPELINE_STEP_TAG)
    node.set_attribute(attrs.COMMAND, step.command)
    if target_id:
        node.set_attribute(attrs.COMMAND_FOR, target_id)
    for key, value in step.data.items():
        name = key if key.startswith("data-") else f"data-{key}"
        node.set_attribute(name, value)
    return node


class PipelineEngine:
    """Executes pipelines from a PipelineCatalog."""

    def __init__(
        self,
        catalog: PipelineCatalog,
        dispatch: Dispatch,
        diagnostics: Diagnostics,
        observability: Observability | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.dispatch = dispatch
        self.diagnostics = diagnostics
        self.observability = observability or Observability()
        self._sleep = sleep

    async def run(
        self,
        name: str,
        source: Node | None = None,
        default_target: str | None = None,
    ) -> ExecutionOutcome:
        """Run pipeline ``name``. Raises PipelineError for missing or empty pipelines."""
        definition = self.catalog.get(name)
        if definition is None:
            raise PipelineError(
                f"Pipeline '{name}' not found",
                command="--pipeline:execute",
                recovery=f"Register the pipeline first; known pipelines: {', '.join(self.catalog.names()) or 'none'}",
            )
        if not definition.steps:
            raise PipelineError(f"Pipeline '{name}' contains no steps", command="--pipeline:execute")

        with self.observability.measure("pipeline_run", {"pipeline": name}) as fields:
            outcome = await self._run_steps(definition, default_target)
            fields["success"] = outcome.success
            fields["error"] = outcome.error_message or None
        return outcome

    async def _run_steps(self, definition: PipelineDefinition, default_target: str | None) -> ExecutionOutcome:
        previous = ExecutionOutcome.ok()
        steps = definition.steps

        for index, step in enumerate(steps):
            if not step.matches(previous):
                logger.debug("Pipeline %s: step %s skipped (condition=%s)", definition.name, step.step_id, step.condition)
                continue

            if step.delay_ms:
                await self._sleep(step.delay_ms / 1000)

            target_id = step.target or default_target
            step_source = build_step_source(step, target_id)
            outcome = ExecutionOutcome.ok()
            for command in split_command_list(step.command):
                outcome = await self.dispatch(normalize_command_name(command), target_id, step_source)
                if not outcome.success:
                    break
            previous = outcome

            if step.once:
                self.catalog.discard_step(definition.name, step.step_id)

            if not outcome.success and not any(later.condition == "error" for later in steps[index + 1:]):
                logger.info("Pipeline %s stopped at step %s: %s", definition.name, step.step_id, outcome.error_message)
                return outcome

        return previous
