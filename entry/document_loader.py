"""
Document Loader — builds a NodeTree and pipelines from a JSON document.

Format::

    {
      "nodes": [
        {"tag": "button", "id": "open", "attributes": {"command": "--toggle", "commandfor": "menu"},
         "children": [{"tag": "and-then", "attributes": {"command": "--text:set:opened"}}]},
        {"tag": "nav", "id": "menu", "attributes": {"hidden": ""}}
      ],
      "pipelines": [
        {"name": "save", "steps": [{"command": "--text:set:saving", "target": "status"}]}
      ]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from nodes.tree import Node, NodeTree
from shared.models import PipelineDefinition

logger = logging.getLogger(__name__)


class DocumentLoadError(Exception):
    """The document could not be read or failed validation."""


class NodeSpec(BaseModel):
    model_config = {"frozen": True}

    tag: str = Field(default="div", min_length=1)
    id: str | None = Field(default=None)
    attributes: dict[str, Any] = Field(default_factory=dict)
    text: str = Field(default="")
    children: list[NodeSpec] = Field(default_factory=list)

    def build(self) -> Node:
        node = Node(
            self.tag,
            node_id=self.id,
            attributes={name: "" if value is True else str(value) for name, value in self.attributes.items()},
            text=self.text,
        )
        for child in self.children:
            node.append(child.build())
        return node


class DocumentSpec(BaseModel):
    model_config = {"frozen": True}

    nodes: list[NodeSpec] = Field(default_factory=list)
    pipelines: list[PipelineDefinition] = Field(default_factory=list)


def parse_document(payload: dict[str, Any]) -> tuple[NodeTree, list[PipelineDefinition]]:
    try:
        document = DocumentSpec.model_validate(payload)
    except ValidationError as exc:
        raise DocumentLoadError(f"Invalid document: {exc}") from exc

    tree = NodeTree()
    for spec in document.nodes:
        tree.add(spec.build())

    ids = tree.all_ids()
    duplicates = sorted({node_id for node_id in ids if ids.count(node_id) > 1})
    if duplicates:
        logger.warning("Document contains duplicate ids: %s", ", ".join(duplicates))
    return tree, list(document.pipelines)


def load_document(path: str | Path) -> tuple[NodeTree, list[PipelineDefinition]]:
    """Read and validate a JSON document from disk."""
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise DocumentLoadError(f"Cannot read document {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise DocumentLoadError(f"Document {path} must contain a JSON object")
    tree, pipelines = parse_document(payload)
    logger.info("Loaded document %s: %d node(s), %d pipeline(s)", path, len(tree.all_ids()), len(pipelines))
    return tree, pipelines
