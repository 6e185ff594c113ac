import asyncio

from commands.core import register_core_commands
from nodes.tree import Node, NodeTree
from observability.diagnostics import CommandTimeoutError
from runtime import InvokerRuntime
from shared.config import RuntimeSettings
from shared.models import ExecutionOutcome


def _runtime(*nodes: Node, **settings) -> InvokerRuntime:
    tree = NodeTree()
    for node in nodes:
        tree.add(node)
    runtime = InvokerRuntime(tree, RuntimeSettings(**settings))
    register_core_commands(runtime.registry)
    return runtime


def test_unknown_command_reports_one_error_with_suggestions():
    async def _run() -> None:
        panel = Node("section", node_id="panel", attributes={"hidden": ""})
        runtime = _runtime(panel)

        outcome = await runtime.execute_command("--tggle", "panel")

        assert outcome.success is False
        assert panel.hidden is True
        assert len(runtime.diagnostics) == 1
        record = runtime.diagnostics[0]
        assert record.severity == "error"
        assert "--toggle" in record.context["suggestions"]
        assert "--toggle" in (record.recovery or "")

    asyncio.run(_run())


def test_handler_exception_becomes_failed_outcome():
    async def _run() -> None:
        runtime = _runtime(Node("div", node_id="t"))

        def explode(context) -> None:
            raise RuntimeError("boom")

        runtime.register("--explode", explode)
        outcome = await runtime.execute_command("--explode", "t")

        assert outcome.success is False
        assert isinstance(outcome.error, RuntimeError)
        errors = [record for record in runtime.diagnostics if record.severity == "error"]
        assert len(errors) == 1
        assert "boom" in (errors[0].cause or "")

    asyncio.run(_run())


def test_handler_timeout_is_a_failure():
    async def _run() -> None:
        runtime = _runtime(Node("div", node_id="t"), command_timeout_seconds=0.05)

        async def slow(context) -> None:
            await asyncio.sleep(5)

        runtime.register("--slow", slow)
        outcome = await runtime.execute_command("--slow", "t")

        assert outcome.success is False
        assert isinstance(outcome.error, CommandTimeoutError)

    asyncio.run(_run())


def test_returned_outcome_is_respected():
    async def _run() -> None:
        runtime = _runtime(Node("div", node_id="t"))
        runtime.register("--soft-fail", lambda context: ExecutionOutcome.failed("nope"))

        outcome = await runtime.execute_command("--soft-fail", "t")

        assert outcome.success is False
        assert outcome.error_message == "nope"

    asyncio.run(_run())


def test_params_are_parsed_with_escapes():
    async def _run() -> None:
        status = Node("p", node_id="status")
        runtime = _runtime(status)

        outcome = await runtime.execute_command("--text:set:10\\:30 today", "status")

        assert outcome.success is True
        assert status.text == "10:30 today"

    asyncio.run(_run())


def test_unprefixed_command_is_normalized_with_warning():
    async def _run() -> None:
        panel = Node("section", node_id="panel", attributes={"hidden": ""})
        runtime = _runtime(panel)

        outcome = await runtime.execute_command("toggle", "panel")

        assert outcome.success is True
        assert panel.hidden is False
        assert [record.severity for record in runtime.diagnostics] == ["warning"]

    asyncio.run(_run())


def test_native_command_is_left_to_the_host():
    async def _run() -> None:
        runtime = _runtime(Node("dialog", node_id="dlg"))

        outcome = await runtime.execute_command("show-modal", "dlg")

        assert outcome.success is True
        assert outcome.skipped is True
        assert runtime.diagnostics == []

    asyncio.run(_run())


def test_missing_target_fails_with_suggestion():
    async def _run() -> None:
        runtime = _runtime(Node("nav", node_id="menu"))

        outcome = await runtime.execute_command("--toggle", "menuu")

        assert outcome.success is False
        assert len(runtime.diagnostics) == 1
        assert runtime.diagnostics[0].context["suggestions"] == ["menu"]

    asyncio.run(_run())


def test_source_selector_fallbacks():
    async def _run() -> None:
        first = Node("div", node_id="first", attributes={"hidden": ""})
        second = Node("div", node_id="second", attributes={"hidden": ""})
        third = Node("div", node_id="third", attributes={"hidden": ""})
        controls = Node("button", attributes={"command": "--toggle", "aria-controls": "first second"})
        data_target = Node("button", attributes={"command": "--toggle", "data-target": "third"})
        runtime = _runtime(first, second, third, controls, data_target)

        await runtime.activate(controls)
        await runtime.activate(data_target)

        assert (first.hidden, second.hidden, third.hidden) == (False, False, False)
        assert controls.get_attribute("aria-expanded") == "true"

    asyncio.run(_run())


def test_multi_target_runs_once_per_target_and_chains_once():
    async def _run() -> None:
        a = Node("li", node_id="a", attributes={"class": "item"})
        b = Node("li", node_id="b", attributes={"class": "item"})
        log = Node("p", node_id="log")
        source = Node(
            "button",
            attributes={
                "command": "--class:add:done",
                "commandfor": ".item",
                "data-and-then": "--text:append:x",
                "data-then-target": "log",
            },
        )
        runtime = _runtime(a, b, log, source)

        outcome = await runtime.activate(source)

        assert outcome.success is True
        assert "done" in a.classes and "done" in b.classes
        assert log.text == "x"

    asyncio.run(_run())


def test_disconnected_target_fails_validation():
    async def _run() -> None:
        runtime = _runtime(Node("div", node_id="attached"))
        island = Node("div", node_id="island")
        source = Node("button", attributes={"command": "--hide", "commandfor": "@closest(div)"})
        island.append(source)

        outcome = await runtime.activate(source)

        assert outcome.success is False
        assert island.hidden is False
        errors = [record for record in runtime.diagnostics if record.severity == "error"]
        assert len(errors) == 1
        assert "not connected" in errors[0].message

    asyncio.run(_run())


def test_activate_without_command_attribute():
    async def _run() -> None:
        runtime = _runtime()
        outcome = await runtime.activate(Node("button"))

        assert outcome.success is False
        assert runtime.diagnostics[0].severity == "error"

    asyncio.run(_run())
