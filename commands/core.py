"""
Core command pack: visibility, text, attributes and classes.

Opt-in: ``register_core_commands(runtime.registry)``. Handlers act on
``context.target``; the dispatcher calls them once per resolved target.
"""

from __future__ import annotations

import logging

from execution.context import CommandContext
from nodes import attributes as attrs
from registry.command_registry import CommandRegistry
from shared.command_string import PART_DELIMITER

logger = logging.getLogger(__name__)


def _require(context: CommandContext, count: int, usage: str) -> tuple[str, ...]:
    if len(context.params) < count or any(not part for part in context.params[:count]):
        raise ValueError(f"{context.prefix} requires arguments: {usage}")
    return context.params


# ─── Visibility ────────────────────────────────────────────────

def toggle(context: CommandContext) -> None:
    context.target.hidden = not context.target.hidden
    context.update_reflected_state()


def show(context: CommandContext) -> None:
    """Show the target and hide its siblings (tab/panel groups)."""
    target = context.target
    if target.parent is not None:
        for sibling in target.parent.children:
            if sibling is not target and sibling.tag != attrs.CONTINUATION_TAG:
                sibling.hidden = True
    target.hidden = False
    context.update_reflected_state()


def hide(context: CommandContext) -> None:
    context.target.hidden = True
    context.update_reflected_state()


# ─── Content ───────────────────────────────────────────────────

def text_set(context: CommandContext) -> None:
    # Literal colons in the text arrive as extra params.
    context.target.text = PART_DELIMITER.join(context.params)


def text_append(context: CommandContext) -> None:
    context.target.text += PART_DELIMITER.join(context.params)


def attr_set(context: CommandContext) -> None:
    params = _require(context, 1, "<name>[:<value>]")
    context.target.set_attribute(params[0], PART_DELIMITER.join(params[1:]))


def attr_remove(context: CommandContext) -> None:
    params = _require(context, 1, "<name>")
    context.target.remove_attribute(params[0])


def class_add(context: CommandContext) -> None:
    context.target.add_class(*_require(context, 1, "<class>"))


def class_remove(context: CommandContext) -> None:
    context.target.remove_class(*_require(context, 1, "<class>"))


def class_toggle(context: CommandContext) -> None:
    for name in _require(context, 1, "<class>"):
        if name in context.target.classes:
            context.target.remove_class(name)
        else:
            context.target.add_class(name)


CORE_COMMANDS = {
    "--toggle": toggle,
    "--show": show,
    "--hide": hide,
    "--text:set": text_set,
    "--text:append": text_append,
    "--attr:set": attr_set,
    "--attr:remove": attr_remove,
    "--class:add": class_add,
    "--class:remove": class_remove,
    "--class:toggle": class_toggle,
}


def register_core_commands(registry: CommandRegistry) -> int:
    """Register the core pack. Returns how many commands were accepted."""
    registered = sum(1 for name, handler in CORE_COMMANDS.items() if registry.register(name, handler))
    logger.debug("Core commands registered: %d", registered)
    return registered
