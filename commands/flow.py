"""
Flow commands installed on every runtime (and re-installed by ``reset``).

- ``--pipeline:execute:<name>`` runs a registered pipeline; the command's
  target becomes the default target for steps that declare none.
- ``--and-then:reset[:<node-id>]`` clears ``data-state`` on the continuation
  nodes below a node so completed chains can run again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from execution.context import CommandContext
from nodes import attributes as attrs
from nodes.tree import Node
from pipeline.engine import PipelineError

if TYPE_CHECKING:
    from runtime.invoker_runtime import InvokerRuntime

logger = logging.getLogger(__name__)

PIPELINE_EXECUTE = "--pipeline:execute"
AND_THEN_RESET = "--and-then:reset"


def reset_continuations(node: Node) -> int:
    """Clear non-active continuation states below ``node``. Returns the count cleared."""
    cleared = 0
    stack = node.children_with_tag(attrs.CONTINUATION_TAG)
    while stack:
        current = stack.pop()
        if current.get_attribute(attrs.STATE) != "active" and current.has_attribute(attrs.STATE):
            current.remove_attribute(attrs.STATE)
            cleared += 1
        stack.extend(current.children_with_tag(attrs.CONTINUATION_TAG))
    return cleared


def register_flow_commands(runtime: InvokerRuntime) -> None:
    async def pipeline_execute(context: CommandContext) -> None:
        name = context.params[0].strip() if context.params else ""
        if not name:
            raise PipelineError(
                "Pipeline execute command requires a pipeline name parameter",
                command=context.full_command,
                recovery=f"Use {PIPELINE_EXECUTE}:<pipeline-name>",
            )
        outcome = await runtime.pipelines.run(name, source=context.source, default_target=context.target.id or None)
        if not outcome.success:
            raise PipelineError(
                f"Pipeline '{name}' failed",
                command=context.full_command,
                cause=outcome.error,
            )

    def and_then_reset(context: CommandContext) -> None:
        node_id = context.params[0].strip() if context.params else ""
        if node_id:
            node = runtime.tree.get_by_id(node_id)
        else:
            node = context.source if context.source is not None else context.target
        if node is None:
            logger.warning("And-then reset: node '%s' not found", node_id)
            return
        cleared = reset_continuations(node)
        logger.debug("And-then reset on %r cleared %d state(s)", node, cleared)

    runtime.registry.register(PIPELINE_EXECUTE, pipeline_execute)
    runtime.registry.register(AND_THEN_RESET, and_then_reset)
