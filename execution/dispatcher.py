"""
Dispatcher — resolves, validates and executes one command, then chains.

Responsibility:
- Resolve the command string via the CommandRegistry (longest prefix)
- Resolve targets fresh from the live tree and check they are connected
- Gate on lifecycle state, run the handler under a hard timeout
- Convert every handler failure into an ExecutionOutcome (never raises)
- Run continuations, attribute chains and scheduled follow-ups afterwards

Prohibitions:
- No leaf effects (those are handlers)
- No direct recursion: nested work goes back through the ExecutionQueue, and
  follow-ups go on a worklist drained by the outermost execution
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable

from chaining.attribute_chain import AttributeChainResolver
from chaining.continuation_walker import ContinuationWalker
from execution.context import CommandContext
from execution.queue import ExecutionQueue, QueueClearedError
from execution.state_store import ExecutionStateStore
from middleware.hooks import HookPoint, MiddlewareRegistry
from nodes import attributes as attrs
from nodes.target_resolver import resolve_targets
from nodes.tree import Node, NodeTree
from observability.diagnostics import (
    CommandTimeoutError,
    Diagnostics,
    InvokerError,
    RateMonitor,
    RunawayChainError,
    suggest,
)
from observability.logger import Observability
from registry.command_registry import NATIVE_COMMAND_KEYWORDS, CommandRegistry, ResolvedCommand
from shared.command_string import COMMAND_PREFIX, normalize_command_name, parse_command_string
from shared.config import RuntimeSettings
from shared.models import ChainDescriptor, CommandState, ExecutionOutcome

logger = logging.getLogger(__name__)


def source_selector(source: Node | None) -> str | None:
    """Target selector declared on a source: commandfor, then aria-controls, then data-target."""
    if source is None:
        return None
    selector = (source.get_attribute(attrs.COMMAND_FOR) or "").strip()
    if selector:
        return selector
    controls = (source.get_attribute(attrs.ARIA_CONTROLS) or "").split()
    if controls:
        return ", ".join(f"#{node_id}" for node_id in controls)
    return (source.get_attribute(attrs.DATA_TARGET) or "").strip() or None


class Dispatcher:
    """Entry point for every command execution."""

    def __init__(
        self,
        *,
        registry: CommandRegistry,
        state_store: ExecutionStateStore,
        queue: ExecutionQueue,
        tree: NodeTree,
        diagnostics: Diagnostics,
        rate_monitor: RateMonitor,
        middleware: MiddlewareRegistry,
        settings: RuntimeSettings,
        observability: Observability | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.state_store = state_store
        self.queue = queue
        self.tree = tree
        self.diagnostics = diagnostics
        self.rate_monitor = rate_monitor
        self.middleware = middleware
        self.settings = settings
        self.observability = observability or Observability()
        self._sleep = sleep
        self.walker = ContinuationWalker(
            dispatch=self.dispatch,
            diagnostics=diagnostics,
            max_depth=settings.max_chain_depth,
            sleep=sleep,
        )
        self.chain_resolver = AttributeChainResolver(run_descriptor=self._defer, diagnostics=diagnostics)
        self._follow_ups: contextvars.ContextVar[deque | None] = contextvars.ContextVar(
            f"dispatcher_follow_ups_{id(self)}", default=None
        )

    # ─── Entry points ──────────────────────────────────────────

    async def dispatch(
        self,
        command: str,
        target_ref: str | None = None,
        source: Node | None = None,
    ) -> ExecutionOutcome:
        """Queue an execution (inline when already inside a queued job)."""
        try:
            return await self.queue.submit(lambda: self.execute(command, target_ref, source))
        except QueueClearedError as exc:
            return ExecutionOutcome(success=False, skipped=True, error=exc)

    async def run_descriptor(
        self,
        descriptor: ChainDescriptor,
        primary_target: Node | None = None,
        source: Node | None = None,
    ) -> ExecutionOutcome:
        """Execute one chain descriptor, honoring its lifecycle key, delay and once flag."""
        target_id = descriptor.target or (primary_target.id if primary_target is not None else "")
        command = normalize_command_name(descriptor.command)
        if not target_id:
            self.diagnostics.warn(
                f"Chained command '{command}' has no target id; skipped",
                command=command,
            )
            return ExecutionOutcome.gated("missing_target")

        state = self.state_store.get(command, target_id)
        if state in ("disabled", "completed"):
            logger.debug("Chained command %s on %s skipped: state=%s", command, target_id, state)
            return ExecutionOutcome.gated(state)

        if descriptor.delay_ms:
            await self._sleep(descriptor.delay_ms / 1000)

        outcome = await self.dispatch(command, target_id, source)
        if descriptor.once:
            self.state_store.mark_completed(command, target_id)
        return outcome

    async def execute(
        self,
        command: str,
        target_ref: str | None = None,
        source: Node | None = None,
    ) -> ExecutionOutcome:
        """Run the full dispatch state machine. Never raises.

        The outermost execution owns the follow-up worklist: nested executions
        append their follow-ups to it, and it is drained here one descriptor at
        a time, so chains of any length never deepen the call stack.
        """
        if self._follow_ups.get() is not None:
            return await self._guarded(command, target_ref, source)

        worklist: deque[tuple[ChainDescriptor, Node | None]] = deque()
        token = self._follow_ups.set(worklist)
        try:
            outcome = await self._guarded(command, target_ref, source)
            await self._drain_follow_ups(worklist)
        finally:
            self._follow_ups.reset(token)
        return outcome

    async def _guarded(self, command: str, target_ref: str | None, source: Node | None) -> ExecutionOutcome:
        try:
            return await self._execute(command, target_ref, source)
        except Exception as exc:
            error = InvokerError(
                f"Failed to execute command '{command}'",
                "critical",
                command=str(command),
                target_ref=target_ref,
                cause=exc,
                recovery="This is an internal error in the runtime or a middleware",
            )
            self.diagnostics.report(error)
            return ExecutionOutcome.failed(error)

    # ─── State machine ─────────────────────────────────────────

    async def _execute(self, command: str, target_ref: str | None, source: Node | None) -> ExecutionOutcome:
        # received
        if not isinstance(command, str) or not command.strip():
            error = InvokerError(
                "Command must be a non-empty string",
                command=str(command),
                recovery="Provide a command string such as '--toggle'",
            )
            self.diagnostics.report(error)
            return ExecutionOutcome.failed(error)
        command = command.strip()

        if not self.rate_monitor.record():
            error = RunawayChainError(command, self.rate_monitor.stats())
            if self.rate_monitor.first_trip():
                self.diagnostics.report(error)
            return ExecutionOutcome.failed(error)

        if not command.startswith(COMMAND_PREFIX):
            if command in NATIVE_COMMAND_KEYWORDS:
                logger.debug("Native command '%s' left to the host", command)
                return ExecutionOutcome.gated("native")
            self.diagnostics.warn(
                f"Non-prefixed command '{command}' detected; handling it as '{COMMAND_PREFIX}{command}'",
                command=command,
                recovery=f"Write '{COMMAND_PREFIX}{command}' in the markup",
            )
            command = f"{COMMAND_PREFIX}{command}"

        # resolved
        resolved = self.registry.resolve(command)
        if resolved is None:
            return self._unknown_command(command, target_ref)

        # validated
        selector = target_ref.strip() if isinstance(target_ref, str) and target_ref.strip() else source_selector(source)
        targets = resolve_targets(selector, self.tree, origin=source)
        if not targets:
            return self._missing_target(command, selector)

        params = tuple(parse_command_string(resolved.remainder)) if len(command) > len(resolved.prefix) else ()
        base_context = CommandContext(
            source=source,
            target=targets[0],
            full_command=command,
            prefix=resolved.prefix,
            params=params,
            get_targets=lambda: resolve_targets(selector, self.tree, origin=source),
        )

        try:
            for target in targets:
                await self.middleware.run(HookPoint.BEFORE_COMMAND, base_context.for_target(target))
        except Exception as exc:
            error = InvokerError(
                f"Command '{command}' aborted by middleware",
                command=command,
                target_ref=selector,
                cause=exc,
            )
            self.diagnostics.report(error)
            return ExecutionOutcome.failed(error)

        declared_state = source.get_attribute(attrs.STATE) if source is not None else None
        executed: list[tuple[Node, ExecutionOutcome]] = []
        validation_error: InvokerError | None = None

        for target in targets:
            context = base_context.for_target(target)
            try:
                await self.middleware.run(HookPoint.BEFORE_VALIDATION, context)
            except Exception as exc:
                validation_error = InvokerError(
                    f"Command '{command}' aborted during validation",
                    command=command,
                    target_ref=target.id or selector,
                    cause=exc,
                )
                self.diagnostics.report(validation_error)
                break

            state = self.state_store.effective_state(command, target.id, declared_state)
            if state in ("disabled", "completed"):
                logger.debug("Command %s on %s gated: state=%s", command, target.id or target, state)
                continue

            problems = self._validate(context)
            if problems:
                validation_error = InvokerError(
                    f"Command execution aborted: {', '.join(problems)}",
                    command=command,
                    target_ref=target.id or selector,
                    context={"validation_errors": problems},
                    recovery="Fix the validation errors and try again",
                )
                self.diagnostics.report(validation_error)
                continue

            # executed → outcome-recorded
            outcome = await self._invoke(resolved, context, state)
            executed.append((target, outcome))

        if not executed:
            if validation_error is not None:
                return ExecutionOutcome.failed(validation_error)
            return ExecutionOutcome.gated("lifecycle")

        failures = [outcome for _target, outcome in executed if not outcome.success]
        outcome = failures[0] if failures else executed[0][1]

        # chained
        await self._chain(source, outcome, executed[0][0], base_context.follow_ups)
        return outcome

    def _validate(self, context: CommandContext) -> list[str]:
        problems: list[str] = []
        if context.target is None:
            problems.append("target node is missing")
        elif not self.tree.contains(context.target):
            problems.append("target node is not connected to the active tree")
        if any(param is None for param in context.params):
            problems.append("command contains null parameters")
        return problems

    async def _invoke(self, resolved: ResolvedCommand, context: CommandContext, state: CommandState) -> ExecutionOutcome:
        started = time.perf_counter()
        try:
            await self.middleware.run(HookPoint.AFTER_VALIDATION, context)
            result = resolved.handler(context)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(self.queue.adopt(result), timeout=self.settings.command_timeout_seconds)
            if isinstance(result, ExecutionOutcome):
                outcome = result
            else:
                outcome = ExecutionOutcome.ok()
        except asyncio.TimeoutError:
            outcome = ExecutionOutcome.failed(
                CommandTimeoutError(context.full_command, self.settings.command_timeout_seconds)
            )
        except Exception as exc:
            outcome = ExecutionOutcome.failed(exc)

        if outcome.success:
            if state == "once":
                self.state_store.mark_completed(context.full_command, context.target.id)
            await self.middleware.run(HookPoint.ON_SUCCESS, context.with_result(outcome))
        else:
            await self.middleware.run(HookPoint.ON_ERROR, context.with_result(outcome))
            self.diagnostics.report(
                InvokerError(
                    f"Command '{resolved.prefix}' execution failed",
                    command=context.full_command,
                    target_ref=context.target.id or None,
                    cause=outcome.error,
                    context={"params": list(context.params), "state": state},
                    recovery="Check the command arguments and the target node",
                )
            )

        await self.middleware.run(HookPoint.ON_COMPLETE, context.with_result(outcome))
        await self.middleware.run(HookPoint.AFTER_COMMAND, context.with_result(outcome))

        self.observability.log_event(
            "command_executed",
            {
                "command": context.full_command,
                "prefix": resolved.prefix,
                "target": context.target.id,
                "has_source": context.source is not None,
                "success": outcome.success,
                "error": outcome.error_message or None,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return outcome

    async def _chain(
        self,
        source: Node | None,
        outcome: ExecutionOutcome,
        primary_target: Node,
        follow_ups: list[tuple[ChainDescriptor, CommandState]],
    ) -> None:
        """Run every kind of follow-up; failures here never replace ``outcome``."""
        if source is not None:
            for stage, runner in (
                ("continuation", self.walker.walk),
                ("attribute chain", self.chain_resolver.run),
            ):
                try:
                    await runner(source, outcome, primary_target)
                except Exception as exc:
                    self.diagnostics.error(
                        f"{stage.capitalize()} processing failed",
                        command=source.get_attribute(attrs.COMMAND),
                        cause=exc,
                    )

        for descriptor, state in follow_ups:
            if state == "disabled":
                continue
            await self._defer(descriptor, primary_target)

    async def _defer(self, descriptor: ChainDescriptor, primary_target: Node | None) -> None:
        worklist = self._follow_ups.get()
        if worklist is None:
            await self.run_descriptor(descriptor, primary_target)
            return
        worklist.append((descriptor, primary_target))

    async def _drain_follow_ups(self, worklist: deque[tuple[ChainDescriptor, Node | None]]) -> None:
        """Run deferred follow-ups in FIFO order; later ones may append more."""
        while worklist:
            descriptor, primary_target = worklist.popleft()
            try:
                outcome = await self.run_descriptor(descriptor, primary_target)
            except Exception as exc:
                self.diagnostics.error(
                    f"Follow-up command '{descriptor.command}' failed to schedule",
                    command=descriptor.command,
                    cause=exc,
                )
                continue
            if isinstance(outcome.error, RunawayChainError):
                logger.debug("Runaway chain: dropping %d deferred follow-up(s)", len(worklist))
                worklist.clear()

    # ─── Failures before execution ─────────────────────────────

    def _unknown_command(self, command: str, target_ref: str | None) -> ExecutionOutcome:
        name = command.split(":", 1)[0]
        suggestions = suggest(name, self.registry.registered_commands)
        error = InvokerError(
            f"Unknown command '{command}'",
            command=command,
            target_ref=target_ref,
            context={
                "suggestions": suggestions,
                "available_commands": self.registry.registered_commands[:10],
            },
            recovery=(
                f"Did you mean: {', '.join(suggestions)}?"
                if suggestions
                else f"Register the command first; custom commands start with '{COMMAND_PREFIX}'"
            ),
        )
        self.diagnostics.report(error)
        return ExecutionOutcome.failed(error)

    def _missing_target(self, command: str, selector: str | None) -> ExecutionOutcome:
        if not selector:
            error = InvokerError(
                "Target must be a non-empty selector",
                command=command,
                recovery="Pass a target id or set commandfor on the source",
            )
        else:
            suggestions = suggest(selector.lstrip("#"), self.tree.all_ids())
            error = InvokerError(
                f"Target '{selector}' not found",
                command=command,
                target_ref=selector,
                context={"suggestions": suggestions, "available_ids": self.tree.all_ids()[:10]},
                recovery=(
                    f"Did you mean: {', '.join(suggestions)}?"
                    if suggestions
                    else "Check that the target exists in the active tree"
                ),
            )
        self.diagnostics.report(error)
        return ExecutionOutcome.failed(error)
