"""
In-memory node tree.

The runtime never touches a real document; it works against this small
model of tagged nodes with string attributes. Markup parsing lives outside
the runtime (see entry/document_loader.py for the JSON fixture format).
"""

from __future__ import annotations

from typing import Callable, Iterator

DATA_PREFIX = "data-"


class Node:
    """A tagged node with string attributes, text and ordered children."""

    def __init__(
        self,
        tag: str = "div",
        *,
        node_id: str | None = None,
        attributes: dict[str, str] | None = None,
        text: str = "",
        children: list[Node] | None = None,
    ):
        self.tag = tag.lower()
        self.attributes: dict[str, str] = {str(k): str(v) for k, v in (attributes or {}).items()}
        if node_id:
            self.attributes["id"] = node_id
        self.text = text
        self.parent: Node | None = None
        self._children: list[Node] = []
        for child in children or []:
            self.append(child)

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        return f"<Node {self.tag}{ident}>"

    # ─── Attributes ────────────────────────────────────────────

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    def get_attribute(self, name: str, default: str | None = None) -> str | None:
        return self.attributes.get(name, default)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def set_attribute(self, name: str, value: object) -> None:
        self.attributes[name] = str(value)

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def toggle_attribute(self, name: str, force: bool | None = None) -> bool:
        present = self.has_attribute(name) if force is None else not force
        if present:
            self.remove_attribute(name)
            return False
        self.set_attribute(name, "")
        return True

    @property
    def data(self) -> dict[str, str]:
        """``data-*`` attributes keyed without the prefix."""
        return {
            name[len(DATA_PREFIX):]: value
            for name, value in self.attributes.items()
            if name.startswith(DATA_PREFIX)
        }

    @property
    def hidden(self) -> bool:
        return self.has_attribute("hidden")

    @hidden.setter
    def hidden(self, value: bool) -> None:
        self.toggle_attribute("hidden", force=bool(value))

    @property
    def classes(self) -> list[str]:
        return [name for name in self.attributes.get("class", "").split() if name]

    def add_class(self, *names: str) -> None:
        current = self.classes
        for name in names:
            if name and name not in current:
                current.append(name)
        self.attributes["class"] = " ".join(current)

    def remove_class(self, *names: str) -> None:
        self.attributes["class"] = " ".join(c for c in self.classes if c not in names)

    # ─── Structure ─────────────────────────────────────────────

    @property
    def children(self) -> list[Node]:
        return list(self._children)

    def append(self, child: Node) -> Node:
        if child.parent is not None:
            child.remove()
        child.parent = self
        self._children.append(child)
        return child

    def remove(self) -> None:
        """Detach from the parent; the subtree stays intact."""
        if self.parent is not None:
            self.parent._children.remove(self)
            self.parent = None

    def children_with_tag(self, tag: str) -> list[Node]:
        tag = tag.lower()
        return [child for child in self._children if child.tag == tag]

    @property
    def root(self) -> Node:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def iter_descendants(self) -> Iterator[Node]:
        stack = list(reversed(self._children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def closest(self, predicate: Callable[[Node], bool]) -> Node | None:
        node: Node | None = self
        while node is not None:
            if predicate(node):
                return node
            node = node.parent
        return None

    def clone(self, deep: bool = True) -> Node:
        copy = Node(self.tag, attributes=dict(self.attributes), text=self.text)
        if deep:
            for child in self._children:
                copy.append(child.clone(deep=True))
        return copy


class NodeTree:
    """The active tree; a node is "connected" when its root is this tree's root."""

    def __init__(self, root: Node | None = None):
        self.root = root or Node("document")

    def add(self, node: Node, parent: Node | None = None) -> Node:
        return (parent or self.root).append(node)

    def iter_nodes(self) -> Iterator[Node]:
        return self.root.iter_descendants()

    def get_by_id(self, node_id: str) -> Node | None:
        """Fresh lookup on every call; the tree may have mutated since the last one."""
        if not node_id:
            return None
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def contains(self, node: Node | None) -> bool:
        return node is not None and node.root is self.root

    def all_ids(self) -> list[str]:
        return [node.id for node in self.iter_nodes() if node.id]
