"""
Invokers Runtime — Main CLI Entrypoint.

Loads a JSON document, wires an InvokerRuntime with the core command pack,
activates nodes in order and renders what happened.
"""

import argparse
import asyncio
import logging
import sys

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from commands.core import register_core_commands
from entry.document_loader import DocumentLoadError, load_document
from runtime import InvokerRuntime
from shared.config import RuntimeSettings, load_settings
from shared.models import ExecutionOutcome

logger = logging.getLogger(__name__)

# ─── Rich Console ───────────────────────────────────────────────

console = Console()

SEVERITY_STYLES = {"warning": "yellow", "error": "red", "critical": "bold red"}


def setup_logging(settings: RuntimeSettings) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_runtime(settings: RuntimeSettings, document: str | None = None) -> InvokerRuntime:
    tree, pipelines = load_document(document) if document else (None, [])
    runtime = InvokerRuntime(tree, settings)
    register_core_commands(runtime.registry)
    for definition in pipelines:
        runtime.register_pipeline(definition)
    return runtime


def _outcome_status(outcome: ExecutionOutcome) -> str:
    if outcome.skipped and outcome.success:
        return "[dim]skipped[/]"
    if outcome.success:
        return "[green]success[/]"
    return "[red]failed[/]"


# ─── Rendering ──────────────────────────────────────────────────

def render_results(runtime: InvokerRuntime, results: list[tuple[str, ExecutionOutcome]]) -> None:
    table = Table(title="Activations", box=box.ROUNDED)
    table.add_column("Source", style="cyan")
    table.add_column("Outcome")
    table.add_column("Error", style="dim")
    for label, outcome in results:
        table.add_row(label, _outcome_status(outcome), outcome.error_message)
    console.print(table)

    if runtime.diagnostics:
        diag_table = Table(title="Diagnostics", box=box.SIMPLE)
        diag_table.add_column("Severity")
        diag_table.add_column("Message", style="white")
        diag_table.add_column("Command", style="magenta")
        diag_table.add_column("Recovery", style="dim")
        for record in runtime.diagnostics:
            style = SEVERITY_STYLES.get(record.severity, "white")
            diag_table.add_row(
                f"[{style}]{record.severity}[/]",
                record.message,
                record.command or "",
                record.recovery or "",
            )
        console.print(diag_table)

    nodes_table = Table(title="Nodes", box=box.MINIMAL)
    nodes_table.add_column("Id", style="bold cyan")
    nodes_table.add_column("Tag", style="magenta")
    nodes_table.add_column("Hidden")
    nodes_table.add_column("Text", style="white")
    nodes_table.add_column("Classes", style="dim")
    for node in runtime.tree.iter_nodes():
        if not node.id:
            continue
        nodes_table.add_row(node.id, node.tag, "yes" if node.hidden else "", node.text, " ".join(node.classes))
    console.print(nodes_table)


# ─── Commands ───────────────────────────────────────────────────

async def run_document(
    runtime: InvokerRuntime,
    activations: list[str],
    pipelines: list[str],
) -> list[tuple[str, ExecutionOutcome]]:
    results: list[tuple[str, ExecutionOutcome]] = []
    for node_id in activations:
        source = runtime.tree.get_by_id(node_id)
        if source is None:
            console.print(f"[bold yellow]Not found:[/] node '{node_id}'")
            continue
        results.append((f"#{node_id}", await runtime.activate(source)))
    for name in pipelines:
        results.append((f"pipeline {name}", await runtime.run_pipeline(name)))
    return results


def list_commands(runtime: InvokerRuntime) -> None:
    table = Table(title="Registered Commands")
    table.add_column("Command", style="cyan")
    table.add_column("Handler", style="dim")
    for name in sorted(runtime.registered_commands):
        handler = runtime.registry.resolve(name).handler
        table.add_row(name, getattr(handler, "__qualname__", type(handler).__name__))
    console.print(table)


def main() -> None:
    """Entrypoint with CLI args."""
    parser = argparse.ArgumentParser(description="Invokers command runtime")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Load a document and activate nodes")
    run_parser.add_argument("document", help="Path to a JSON document (nodes + pipelines)")
    run_parser.add_argument("--activate", action="append", default=[], metavar="ID", help="Node id to activate (repeatable)")
    run_parser.add_argument("--pipeline", action="append", default=[], metavar="NAME", help="Pipeline to run (repeatable)")
    run_parser.add_argument("--debug", action="store_true", help="Show warning diagnostics and debug logs")

    subparsers.add_parser("commands", help="List built-in and core commands")

    args = parser.parse_args()

    settings = load_settings()
    if getattr(args, "debug", False):
        settings = settings.model_copy(update={"debug": True})
    setup_logging(settings)

    if args.command == "run":
        try:
            runtime = build_runtime(settings, args.document)
        except DocumentLoadError as e:
            console.print(f"[bold red]Failed to load document:[/] {e}")
            sys.exit(1)

        console.print(Panel(
            f"Document: {args.document}\nNodes: {len(runtime.tree.all_ids())}  Pipelines: {len(runtime.catalog.names())}",
            title="Invokers",
            border_style="cyan",
            box=box.ROUNDED,
        ))
        try:
            results = asyncio.run(run_document(runtime, args.activate, args.pipeline))
        except KeyboardInterrupt:
            return
        except Exception as e:
            console.print(f"[bold red]Run failed:[/] {e}")
            sys.exit(1)
        render_results(runtime, results)
    elif args.command == "commands":
        list_commands(build_runtime(settings))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
