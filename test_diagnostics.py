import asyncio
import json
import logging

from nodes.tree import Node, NodeTree
from observability.diagnostics import Diagnostics, RateMonitor, edit_distance, suggest
from observability.logger import Observability
from runtime import InvokerRuntime
from shared.config import RuntimeSettings


def test_edit_distance_is_bounded():
    assert edit_distance("toggle", "toggle") == 0
    assert edit_distance("tggle", "toggle") == 1
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("a", "abcdefgh", max_distance=3) == 4


def test_suggest_prefers_containment_then_distance():
    candidates = ["--toggle", "--text:set", "--text:append", "--class:toggle", "--hide"]

    assert suggest("--text", candidates) == ["--text:set", "--text:append"]
    assert suggest("--tgggle", candidates) == ["--toggle"]
    assert suggest("--zzzzzzzz", candidates) == []
    assert len(suggest("toggle", candidates + ["--toggle:x", "--toggle:y"])) == 3


def test_warnings_are_recorded_but_only_logged_in_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="observability.diagnostics")

    quiet = Diagnostics(debug=False)
    quiet.warn("quiet warning")
    assert len(quiet.records) == 1
    assert "quiet warning" not in caplog.text

    loud = Diagnostics(debug=True)
    loud.warn("loud warning", command="--x", recovery="do something")
    assert "loud warning" in caplog.text
    assert "fix: do something" in caplog.text

    quiet.error("always logged")
    assert "always logged" in caplog.text
    assert [record.severity for record in quiet.records] == ["warning", "error"]
    assert len(quiet.by_severity("error")) == 1


def test_rate_monitor_fixed_window():
    now = [0.0]
    monitor = RateMonitor(max_executions=2, window_seconds=1.0, clock=lambda: now[0])

    assert monitor.record() is True
    assert monitor.record() is True
    assert monitor.record() is False
    assert monitor.first_trip() is True
    assert monitor.first_trip() is False
    assert monitor.stats()["executions_in_window"] == 2

    now[0] = 1.5
    assert monitor.record() is True
    assert monitor.stats()["executions_in_window"] == 1


def test_runaway_chain_is_aborted_with_one_critical():
    async def _run() -> None:
        tree = NodeTree()
        tree.add(Node("div", node_id="target"))
        runtime = InvokerRuntime(tree, RuntimeSettings(rate_limit_max_executions=3))
        calls: list[int] = []

        def loop(context) -> None:
            calls.append(1)
            context.schedule_follow_up("--loop")

        runtime.register("--loop", loop)

        outcome = await runtime.execute_command("--loop", "target")

        assert outcome.success is True
        assert len(calls) == 3
        critical = [record for record in runtime.diagnostics if record.severity == "critical"]
        assert len(critical) == 1
        assert critical[0].context["max_executions"] == 3
        assert runtime.get_stats()["executions_in_window"] == 3

    asyncio.run(_run())


def test_long_follow_up_chain_stops_at_rate_limit_not_stack():
    async def _run() -> None:
        tree = NodeTree()
        tree.add(Node("div", node_id="target"))
        settings = RuntimeSettings(rate_limit_max_executions=2000, rate_limit_window_seconds=60.0)
        runtime = InvokerRuntime(tree, settings)
        calls: list[int] = []

        def loop(context) -> None:
            calls.append(1)
            context.schedule_follow_up("--loop")

        runtime.register("--loop", loop)

        outcome = await runtime.execute_command("--loop", "target")

        assert outcome.success is True
        assert len(calls) == 2000
        critical = [record for record in runtime.diagnostics if record.severity == "critical"]
        assert len(critical) == 1
        assert "Rate limit exceeded" in critical[0].message
        assert not any("recursion" in (record.cause or "").lower() for record in runtime.diagnostics)

    asyncio.run(_run())


def test_handler_recursion_stops_at_rate_limit_not_stack():
    async def _run() -> None:
        tree = NodeTree()
        tree.add(Node("div", node_id="target"))
        settings = RuntimeSettings(rate_limit_max_executions=500, rate_limit_window_seconds=60.0)
        runtime = InvokerRuntime(tree, settings)
        calls: list[int] = []

        async def dig(context) -> None:
            calls.append(1)
            await runtime.execute_command("--dig", "target")

        runtime.register("--dig", dig)

        outcome = await runtime.execute_command("--dig", "target")

        assert outcome.success is True
        assert len(calls) == 500
        critical = [record for record in runtime.diagnostics if record.severity == "critical"]
        assert len(critical) == 1
        assert "Rate limit exceeded" in critical[0].message

    asyncio.run(_run())


def test_measure_logs_execution_metric(caplog):
    caplog.set_level(logging.DEBUG, logger="observability")
    obs = Observability(runtime_id="rt-1")

    with obs.measure("pipeline_run", {"pipeline": "save"}) as fields:
        fields["success"] = False
        fields["error"] = "step failed"

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "execution_metric"
    assert payload["runtime_id"] == "rt-1"
    assert payload["operation"] == "pipeline_run"
    assert payload["pipeline"] == "save"
    assert payload["success"] is False
    assert payload["error"] == "step failed"
