import asyncio

from commands.core import register_core_commands
from nodes.tree import Node, NodeTree
from pipeline.engine import PipelineError
from runtime import InvokerRuntime
from shared.models import PipelineDefinition, PipelineStep


def _setup(*nodes: Node) -> tuple[InvokerRuntime, list[str], list[float]]:
    tree = NodeTree()
    tree.add(Node("p", node_id="status"))
    for node in nodes:
        tree.add(node)
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    runtime = InvokerRuntime(tree, sleep=fake_sleep)
    register_core_commands(runtime.registry)
    marks: list[str] = []

    def mark(context) -> None:
        marks.append(context.params[0])

    def fail(context) -> None:
        raise RuntimeError("step failed")

    runtime.register("--mark", mark)
    runtime.register("--fail", fail)
    return runtime, marks, delays


def test_pipeline_runs_steps_in_order_with_delays():
    async def _run() -> None:
        runtime, marks, delays = _setup()
        runtime.register_pipeline(
            PipelineDefinition(
                name="save",
                steps=[
                    PipelineStep(command="--text:set:saving", target="status"),
                    PipelineStep(command="--mark:one, --mark:two", target="status", delay_ms=500),
                    PipelineStep(command="--text:append: done", target="status"),
                ],
            )
        )

        outcome = await runtime.run_pipeline("save")

        assert outcome.success is True
        assert marks == ["one", "two"]
        assert delays == [0.5]
        assert runtime.tree.get_by_id("status").text == "saving done"

    asyncio.run(_run())


def test_failure_stops_when_no_error_step_follows():
    async def _run() -> None:
        runtime, marks, _ = _setup()
        runtime.register_pipeline(
            PipelineDefinition(
                name="fragile",
                steps=[
                    PipelineStep(command="--mark:first", target="status"),
                    PipelineStep(command="--fail", target="status"),
                    PipelineStep(command="--mark:after", target="status", condition="always"),
                ],
            )
        )

        outcome = await runtime.run_pipeline("fragile")

        assert outcome.success is False
        assert marks == ["first"]

    asyncio.run(_run())


def test_error_gated_step_recovers():
    async def _run() -> None:
        runtime, marks, _ = _setup()
        runtime.register_pipeline(
            PipelineDefinition(
                name="recovering",
                steps=[
                    PipelineStep(command="--fail", target="status"),
                    PipelineStep(command="--mark:skipped", target="status", condition="success"),
                    PipelineStep(command="--mark:recover", target="status", condition="error"),
                    PipelineStep(command="--mark:final", target="status"),
                ],
            )
        )

        outcome = await runtime.run_pipeline("recovering")

        assert outcome.success is True
        assert marks == ["recover", "final"]

    asyncio.run(_run())


def test_once_step_is_removed_after_first_run():
    async def _run() -> None:
        runtime, marks, _ = _setup()
        runtime.register_pipeline(
            PipelineDefinition(
                name="intro",
                steps=[
                    PipelineStep(step_id="welcome", command="--mark:welcome", target="status", once=True),
                    PipelineStep(command="--mark:every-time", target="status"),
                ],
            )
        )

        await runtime.run_pipeline("intro")
        await runtime.run_pipeline("intro")

        assert marks == ["welcome", "every-time", "every-time"]
        assert [step.command for step in runtime.catalog.get("intro").steps] == ["--mark:every-time"]

    asyncio.run(_run())


def test_missing_and_empty_pipelines_raise():
    async def _run() -> None:
        runtime, _marks, _ = _setup()
        runtime.register_pipeline(PipelineDefinition(name="empty", steps=[]))

        for name in ("nope", "empty"):
            try:
                await runtime.run_pipeline(name)
                assert False, f"expected PipelineError for {name}"
            except PipelineError:
                pass

    asyncio.run(_run())


def test_step_data_reaches_handler_context():
    async def _run() -> None:
        runtime, _marks, _ = _setup()
        seen: list[dict[str, str]] = []
        runtime.register("--inspect", lambda context: seen.append(context.data))
        runtime.register_pipeline(
            PipelineDefinition(
                name="with-data",
                steps=[PipelineStep(command="--inspect", target="status", data={"endpoint": "/api/save"})],
            )
        )

        await runtime.run_pipeline("with-data")

        assert seen == [{"endpoint": "/api/save"}]

    asyncio.run(_run())


def test_pipeline_execute_command_uses_command_target_as_default():
    async def _run() -> None:
        ok_button = Node("button", attributes={"command": "--pipeline:execute:greet", "commandfor": "status"})
        bad_button = Node("button", attributes={"command": "--pipeline:execute:broken", "commandfor": "status"})
        runtime, marks, _ = _setup(ok_button, bad_button)
        runtime.register_pipeline(
            PipelineDefinition(name="greet", steps=[PipelineStep(command="--text:set:hello")])
        )
        runtime.register_pipeline(
            PipelineDefinition(name="broken", steps=[PipelineStep(command="--fail")])
        )

        ok = await runtime.activate(ok_button)
        bad = await runtime.activate(bad_button)

        assert ok.success is True
        assert runtime.tree.get_by_id("status").text == "hello"
        assert bad.success is False
        assert isinstance(bad.error, PipelineError)

    asyncio.run(_run())


def test_catalog_hands_out_copies():
    runtime = InvokerRuntime()
    runtime.register_pipeline(PipelineDefinition(name="p", steps=[PipelineStep(command="--mark:a")]))

    first = runtime.catalog.get("p")
    second = runtime.catalog.get("p")

    assert first == second
    assert first is not second
    assert runtime.catalog.names() == ["p"]
