"""
Middleware & plugins.

Hook points wrap every command execution. ``beforeCommand``,
``beforeValidation`` and ``afterValidation`` may raise to abort the command;
errors from the remaining hooks are logged and ignored.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class HookPoint(str, Enum):
    BEFORE_COMMAND = "beforeCommand"
    AFTER_COMMAND = "afterCommand"
    BEFORE_VALIDATION = "beforeValidation"
    AFTER_VALIDATION = "afterValidation"
    ON_SUCCESS = "onSuccess"
    ON_ERROR = "onError"
    ON_COMPLETE = "onComplete"


ABORTING_HOOKS = frozenset({HookPoint.BEFORE_COMMAND, HookPoint.BEFORE_VALIDATION, HookPoint.AFTER_VALIDATION})

MiddlewareFunction = Callable[[Any, HookPoint], Any]


@runtime_checkable
class InvokerPlugin(Protocol):
    """Protocol for plugins. Only ``name`` is required; the rest is optional."""

    name: str


class MiddlewareRegistry:
    """Ordered middleware lists per hook point."""

    def __init__(self) -> None:
        self._middleware: dict[HookPoint, list[MiddlewareFunction]] = {}

    def register(self, hook_point: HookPoint | str, middleware: MiddlewareFunction) -> None:
        point = HookPoint(hook_point)
        self._middleware.setdefault(point, []).append(middleware)

    def unregister(self, hook_point: HookPoint | str, middleware: MiddlewareFunction) -> None:
        point = HookPoint(hook_point)
        items = self._middleware.get(point, [])
        if middleware in items:
            items.remove(middleware)

    def count(self, hook_point: HookPoint | str) -> int:
        return len(self._middleware.get(HookPoint(hook_point), []))

    async def run(self, hook_point: HookPoint, context: Any) -> None:
        """Run every middleware for ``hook_point`` in registration order."""
        for middleware in list(self._middleware.get(hook_point, [])):
            try:
                maybe_result = middleware(context, hook_point)
                if inspect.isawaitable(maybe_result):
                    await maybe_result
            except Exception as exc:
                if hook_point in ABORTING_HOOKS:
                    raise
                logger.error("Middleware error at %s: %s", hook_point.value, exc)

    def clear(self) -> None:
        self._middleware.clear()


class PluginManager:
    """Tracks plugins and wires their middleware into a MiddlewareRegistry."""

    def __init__(self, middleware: MiddlewareRegistry, owner: Any = None):
        self.middleware = middleware
        self.owner = owner
        self._plugins: dict[str, Any] = {}

    def register(self, plugin: InvokerPlugin) -> bool:
        name = str(getattr(plugin, "name", "") or "").strip()
        if not name:
            raise ValueError("Plugin must define a non-empty name")
        if name in self._plugins:
            logger.warning("Plugin '%s' is already registered", name)
            return False

        self._plugins[name] = plugin
        for hook_point, middleware in (getattr(plugin, "middleware", None) or {}).items():
            if middleware:
                self.middleware.register(hook_point, middleware)

        on_register = getattr(plugin, "on_register", None)
        if callable(on_register):
            try:
                on_register(self.owner)
            except Exception as exc:
                logger.error("Error in plugin '%s' on_register: %s", name, exc)
        logger.debug("Plugin '%s' registered", name)
        return True

    def unregister(self, name: str) -> bool:
        plugin = self._plugins.get(name)
        if plugin is None:
            logger.warning("Plugin '%s' is not registered", name)
            return False

        on_unregister = getattr(plugin, "on_unregister", None)
        if callable(on_unregister):
            try:
                on_unregister(self.owner)
            except Exception as exc:
                logger.error("Error in plugin '%s' on_unregister: %s", name, exc)

        for hook_point, middleware in (getattr(plugin, "middleware", None) or {}).items():
            if middleware:
                self.middleware.unregister(hook_point, middleware)
        del self._plugins[name]
        return True

    def has(self, name: str) -> bool:
        return name in self._plugins

    @property
    def registered_plugins(self) -> list[str]:
        return list(self._plugins.keys())

    def clear(self) -> None:
        self._plugins.clear()
        self.middleware.clear()
