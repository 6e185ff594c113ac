import asyncio
import json
from pathlib import Path

from commands.core import register_core_commands
from entry.document_loader import DocumentLoadError, load_document, parse_document
from runtime import InvokerRuntime


DOCUMENT = {
    "nodes": [
        {
            "tag": "button",
            "id": "open",
            "attributes": {"command": "--toggle", "commandfor": "menu", "aria-expanded": "false"},
            "children": [
                {"tag": "and-then", "attributes": {"command": "--text:set:opened", "commandfor": "status"}}
            ],
        },
        {"tag": "nav", "id": "menu", "attributes": {"hidden": True}},
        {"tag": "p", "id": "status"},
    ],
    "pipelines": [
        {"name": "reset-status", "steps": [{"command": "--text:set:idle", "target": "status"}]},
    ],
}


def test_load_document_builds_tree_and_pipelines(tmp_path: Path):
    path = tmp_path / "doc.json"
    path.write_text(json.dumps(DOCUMENT), encoding="utf-8")

    tree, pipelines = load_document(path)

    assert tree.all_ids() == ["open", "menu", "status"]
    assert tree.get_by_id("menu").hidden is True
    assert tree.get_by_id("menu").get_attribute("hidden") == ""
    assert tree.get_by_id("open").children_with_tag("and-then")[0].get_attribute("command") == "--text:set:opened"
    assert [definition.name for definition in pipelines] == ["reset-status"]


def test_loaded_document_runs_end_to_end():
    async def _run() -> None:
        tree, pipelines = parse_document(DOCUMENT)
        runtime = InvokerRuntime(tree)
        register_core_commands(runtime.registry)
        for definition in pipelines:
            runtime.register_pipeline(definition)

        outcome = await runtime.activate(tree.get_by_id("open"))

        assert outcome.success is True
        assert tree.get_by_id("menu").hidden is False
        assert tree.get_by_id("open").get_attribute("aria-expanded") == "true"
        assert tree.get_by_id("status").text == "opened"

        await runtime.run_pipeline("reset-status")
        assert tree.get_by_id("status").text == "idle"

    asyncio.run(_run())


def test_invalid_documents_raise(tmp_path: Path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps({"pipelines": [{"name": "x", "steps": [{"command": "  "}]}]}), encoding="utf-8")

    for path in (broken, invalid, tmp_path / "missing.json"):
        try:
            load_document(path)
            assert False, f"expected DocumentLoadError for {path.name}"
        except DocumentLoadError:
            pass
