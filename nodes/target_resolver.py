"""
Target resolution.

Supported selectors:
- ``@closest(sel)``, ``@child(sel)``, ``@children(sel)`` relative to the origin node
- ``#id`` or a bare id
- simple selectors: ``tag``, ``.class``, ``tag.class``, ``tag#id``
- comma-separated lists of the above
"""

from __future__ import annotations

import logging
import re

from nodes.tree import Node, NodeTree

logger = logging.getLogger(__name__)

_CONTEXTUAL = re.compile(r"^@([a-z]+)\((.*)\)$")
_SIMPLE = re.compile(r"^(?P<tag>[a-zA-Z][\w-]*)?(?:#(?P<id>[\w-]+))?(?P<classes>(?:\.[\w-]+)*)$")


def matches_selector(node: Node, selector: str) -> bool:
    """Match a node against one simple selector."""
    match = _SIMPLE.match(selector.strip())
    if not match or not selector.strip():
        return False
    tag, node_id, classes = match.group("tag"), match.group("id"), match.group("classes")
    if tag and node.tag != tag.lower():
        return False
    if node_id and node.id != node_id:
        return False
    if classes:
        wanted = [name for name in classes.split(".") if name]
        if any(name not in node.classes for name in wanted):
            return False
    return True


def _split_selector_list(selector: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    parts.append("".join(current).strip())
    return [part for part in parts if part]


def _resolve_single(selector: str, tree: NodeTree, origin: Node | None) -> list[Node]:
    contextual = _CONTEXTUAL.match(selector)
    if selector.startswith("@"):
        if not contextual or origin is None:
            logger.warning("Invalid or origin-less contextual selector: %s", selector)
            return []
        kind = contextual.group(1)
        inner = re.sub(r"\\([()])", r"\1", contextual.group(2)).strip()
        if kind == "closest":
            found = origin.closest(lambda node: matches_selector(node, inner))
            return [found] if found is not None else []
        if kind == "child":
            for node in origin.iter_descendants():
                if matches_selector(node, inner):
                    return [node]
            return []
        if kind == "children":
            return [node for node in origin.iter_descendants() if matches_selector(node, inner)]
        logger.warning("Unknown contextual selector type '@%s'", kind)
        return []

    if selector.startswith("#"):
        found = tree.get_by_id(selector[1:])
        return [found] if found is not None else []

    by_id = tree.get_by_id(selector)
    if by_id is not None:
        return [by_id]

    if not _SIMPLE.match(selector):
        logger.error("Invalid selector: %s", selector)
        return []
    return [node for node in tree.iter_nodes() if matches_selector(node, selector)]


def resolve_targets(selector: str | None, tree: NodeTree, origin: Node | None = None) -> list[Node]:
    """Resolve a selector to connected nodes, in document order, without duplicates."""
    if not selector or not selector.strip():
        return []
    resolved: list[Node] = []
    for part in _split_selector_list(selector.strip()):
        for node in _resolve_single(part, tree, origin):
            if node not in resolved:
                resolved.append(node)
    return resolved
