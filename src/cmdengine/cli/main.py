"""
Command Engine CLI - Main Entry Point.

Provides the `cmdengine` command for running commands locally,
inspecting available actions and browsing the command history.
"""

import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.table import Table

from cmdengine.bootstrap import Engine, build_engine
from cmdengine.core.config import get_settings
from cmdengine.core.progress import CallbackSink
from cmdengine.core.types import Result, ResultStatus, Step, StepStatus

app = typer.Typer(
    name="cmdengine",
    help="Command engine - turn free-text commands into actions",
    no_args_is_help=True,
)

console = Console()

_STATUS_STYLE = {
    ResultStatus.SUCCESS: "green",
    ResultStatus.PARTIAL: "yellow",
    ResultStatus.FAILED: "red",
}

_STEP_ICON = {
    StepStatus.IN_PROGRESS: "[cyan]…[/cyan]",
    StepStatus.COMPLETED: "[green]✓[/green]",
    StepStatus.FAILED: "[red]✗[/red]",
}


def _engine() -> Engine:
    return build_engine(get_settings())


def _print_step(step: Step) -> None:
    text = step.message or step.status.value
    console.print(f"  {_STEP_ICON[step.status]} [bold]{step.label}[/bold] {text}")


def _print_result(result: Result, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    style = _STATUS_STYLE[result.status]
    console.print(f"[{style}]{result.status.value}:[/{style}] {result.message}")
    for key, value in result.data.items():
        console.print(f"  [dim]{key}:[/dim] {value}")
    for label, link in result.actions.items():
        console.print(f"  [blue]{label}:[/blue] {link}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def run(
    command: str = typer.Argument(..., help="Command text, e.g. 'list posts'"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default from settings)"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print progress as it happens"),
    as_json: bool = typer.Option(False, "--json", help="Print the result envelope as JSON"),
):
    """Run one command."""
    engine = _engine()
    caller = engine.users.get_user(user or engine.settings.default_user_id)
    sink = CallbackSink(_print_step) if stream else None

    async def _run() -> Result:
        try:
            return await engine.processor.process(command, caller, sink)
        finally:
            await engine.aclose()

    result = asyncio.run(_run())
    _print_result(result, as_json)
    if result.status == ResultStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def actions(
    user: str | None = typer.Option(None, "--user", "-u", help="User id (default from settings)"),
):
    """List the actions a user can run right now."""
    engine = _engine()
    caller = engine.users.get_user(user or engine.settings.default_user_id)

    table = Table(title=f"Actions for {caller.id}")
    table.add_column("Action", style="cyan")
    table.add_column("Capability")
    table.add_column("Permission")
    table.add_column("Description")

    for action in engine.processor.visible_actions(caller):
        capability = engine.capabilities.capability_for(action.name)
        table.add_row(
            action.name,
            capability.name if capability else "-",
            action.permission or "public",
            action.description,
        )
    console.print(table)

    disabled = [c["name"] for c in engine.capabilities.describe() if not c["enabled"]]
    if disabled:
        console.print(f"[dim]Disabled capabilities: {', '.join(disabled)}[/dim]")


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=100, help="Number of entries"),
    user: str | None = typer.Option(None, "--user", "-u", help="Only this user's commands"),
):
    """Show recently processed commands."""
    engine = _engine()
    entries = engine.audit.recent(limit=limit, user_id=user)

    if not entries:
        console.print("[yellow]No commands recorded[/yellow]")
        return

    table = Table(title="Command History")
    table.add_column("When", style="dim")
    table.add_column("User")
    table.add_column("Command")
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("ms", justify="right")

    for entry in entries:
        style = _STATUS_STYLE[ResultStatus(entry.status)]
        table.add_row(
            entry.finished_at[:19],
            entry.user_id,
            entry.command[:60],
            entry.intent.get("action") or "-",
            f"[{style}]{entry.status}[/{style}]",
            f"{entry.execution_time_ms:.0f}",
        )
    console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind to"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of workers"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"[green]Starting command engine API on {host}:{port}[/green]")

    uvicorn.run(
        "cmdengine.api.server:app",
        host=host,
        port=port,
        workers=workers,
        reload=reload,
    )


@app.command()
def version():
    """Show version information."""
    from cmdengine import __version__

    console.print(f"cmdengine v{__version__}")


# =============================================================================
# Entry Point
# =============================================================================


def main():
    """Main entry point for the CLI."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
