"""
Invoker Runtime — wires every layer for one session.

Responsibility:
- Own the registry, state store, queue, diagnostics and rate monitor
- Expose the programmatic entry points (execute_command, activate, run_pipeline)
- Install the flow commands and manage plugins/middleware
- Reset everything back to a freshly constructed state

One runtime per test/session; nothing here is a process-wide singleton.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from commands.flow import register_flow_commands
from execution.dispatcher import Dispatcher
from execution.queue import ExecutionQueue
from execution.state_store import ExecutionStateStore
from middleware.hooks import HookPoint, InvokerPlugin, MiddlewareFunction, MiddlewareRegistry, PluginManager
from nodes import attributes as attrs
from nodes.tree import Node, NodeTree
from observability.diagnostics import Diagnostics, RateMonitor
from observability.logger import Observability
from pipeline.engine import PipelineCatalog, PipelineEngine
from registry.command_registry import CommandHandler, CommandRegistry
from shared.config import RuntimeSettings
from shared.models import DiagnosticRecord, ExecutionOutcome, PipelineDefinition

logger = logging.getLogger(__name__)


class InvokerRuntime:
    """Command dispatch, lifecycle state and chaining over one NodeTree."""

    def __init__(
        self,
        tree: NodeTree | None = None,
        settings: RuntimeSettings | None = None,
        *,
        register_builtins: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.tree = tree or NodeTree()
        self.settings = settings or RuntimeSettings()
        self.observability = Observability()
        self.diagnostics_log = Diagnostics(debug=self.settings.debug)
        self.registry = CommandRegistry(self.diagnostics_log)
        self.state_store = ExecutionStateStore()
        self.queue = ExecutionQueue()
        self.rate_monitor = RateMonitor(
            max_executions=self.settings.rate_limit_max_executions,
            window_seconds=self.settings.rate_limit_window_seconds,
        )
        self.middleware = MiddlewareRegistry()
        self.plugins = PluginManager(self.middleware, owner=self)
        self.dispatcher = Dispatcher(
            registry=self.registry,
            state_store=self.state_store,
            queue=self.queue,
            tree=self.tree,
            diagnostics=self.diagnostics_log,
            rate_monitor=self.rate_monitor,
            middleware=self.middleware,
            settings=self.settings,
            observability=self.observability,
            sleep=sleep,
        )
        self.catalog = PipelineCatalog()
        self.pipelines = PipelineEngine(
            catalog=self.catalog,
            dispatch=self.dispatcher.dispatch,
            diagnostics=self.diagnostics_log,
            observability=self.observability,
            sleep=sleep,
        )
        self._register_builtins = register_builtins
        if register_builtins:
            register_flow_commands(self)
        logger.debug("InvokerRuntime %s ready", self.observability.runtime_id)

    # ─── Commands ──────────────────────────────────────────────

    def register(self, name: str, handler: CommandHandler) -> bool:
        return self.registry.register(name, handler)

    def unregister(self, name: str) -> bool:
        return self.registry.unregister(name)

    @property
    def registered_commands(self) -> list[str]:
        return self.registry.registered_commands

    async def execute_command(
        self,
        command: str,
        target_id: str | None = None,
        source: Node | None = None,
    ) -> ExecutionOutcome:
        """Programmatically execute a command. Never raises for command failures."""
        return await self.dispatcher.dispatch(command, target_id, source)

    async def activate(self, source: Node) -> ExecutionOutcome:
        """Simulate a user activation of ``source`` (reads its ``command`` attribute)."""
        command = (source.get_attribute(attrs.COMMAND) or "").strip()
        if not command:
            record = self.diagnostics_log.error(
                f"Activated node {source!r} has no '{attrs.COMMAND}' attribute",
                recovery=f"Set '{attrs.COMMAND}' on the node",
            )
            return ExecutionOutcome.failed(record.message)
        return await self.dispatcher.dispatch(command, None, source)

    async def join(self) -> None:
        await self.queue.join()

    # ─── Pipelines ─────────────────────────────────────────────

    def register_pipeline(self, definition: PipelineDefinition) -> None:
        self.catalog.register(definition)

    async def run_pipeline(self, name: str, default_target: str | None = None) -> ExecutionOutcome:
        return await self.pipelines.run(name, default_target=default_target)

    # ─── Plugins & middleware ──────────────────────────────────

    def register_plugin(self, plugin: InvokerPlugin) -> bool:
        return self.plugins.register(plugin)

    def unregister_plugin(self, name: str) -> bool:
        return self.plugins.unregister(name)

    def has_plugin(self, name: str) -> bool:
        return self.plugins.has(name)

    @property
    def registered_plugins(self) -> list[str]:
        return self.plugins.registered_plugins

    def register_middleware(self, hook_point: HookPoint | str, middleware: MiddlewareFunction) -> None:
        self.middleware.register(hook_point, middleware)

    def unregister_middleware(self, hook_point: HookPoint | str, middleware: MiddlewareFunction) -> None:
        self.middleware.unregister(hook_point, middleware)

    # ─── Diagnostics ───────────────────────────────────────────

    @property
    def diagnostics(self) -> list[DiagnosticRecord]:
        return list(self.diagnostics_log.records)

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.rate_monitor.stats(),
            "registered_commands": len(self.registry.registered_commands),
            "pending_jobs": self.queue.pending_count,
            "diagnostics": len(self.diagnostics_log.records),
        }

    def reset(self) -> None:
        """Back to a freshly constructed runtime (the node tree is left alone)."""
        for name in self.plugins.registered_plugins:
            self.plugins.unregister(name)
        self.plugins.clear()
        dropped = self.queue.clear()
        self.registry.clear()
        self.state_store.reset()
        self.catalog.clear()
        self.rate_monitor.reset()
        self.diagnostics_log.clear()
        if self._register_builtins:
            register_flow_commands(self)
        logger.info("InvokerRuntime reset (%d queued job(s) dropped)", dropped)
