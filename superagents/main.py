"""Command-line entry point for superagents."""

import asyncio
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from superagents.config import Config, get_config, set_config
from superagents.formatting import format_duration, format_task_result, format_task_status, short_id, status_icon
from superagents.logging import configure_logging, get_logger
from superagents.manager import TaskManager
from superagents.models import COMPLETED, LaunchInput
from superagents.session_service import OpencodeClient
from superagents.storage import TaskStore

log = get_logger(__name__)
console = Console()

app = typer.Typer(help="superagents - background agent task orchestration")


@app.callback()
def setup(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Load configuration and configure logging."""
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            console.print(f"[red]Failed to load config {config}: {e}[/red]")
            cfg = Config.load()
    else:
        cfg = Config.load()
    if verbose:
        cfg.logging.level = "DEBUG"

    set_config(cfg)
    configure_logging(cfg.logging)


@app.command()
def tasks() -> None:
    """List the persisted task shadow."""
    store = TaskStore(get_config().resolved_storage_path())
    records = asyncio.run(store.load())
    if not records:
        console.print("[yellow]No persisted tasks.[/yellow]")
        return

    table = Table(title="Persisted Tasks", show_header=True, header_style="bold cyan")
    table.add_column("Task ID")
    table.add_column("Description", overflow="fold")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Age")
    table.add_column("Resumes", justify="right")
    ordered = sorted(records.items(), key=lambda item: item[1].created_at, reverse=True)
    for session_id, record in ordered:
        forked = " (fork)" if record.is_forked else ""
        table.add_row(
            short_id(session_id) + forked,
            record.description,
            record.agent,
            f"{status_icon(record.status)} {record.status}",
            format_duration(record.created_at) if record.created_at else "-",
            str(record.resume_count),
        )
    console.print(table)


@app.command()
def forget(task_id: str = typer.Argument(..., help="Task ID or unique prefix")) -> None:
    """Delete a persisted task entry."""
    store = TaskStore(get_config().resolved_storage_path())

    async def _forget() -> str | None:
        found = await store.resolve(task_id)
        if found is None:
            return None
        await store.delete(found[0])
        return found[0]

    match = asyncio.run(_forget())
    if match is None:
        console.print(f"[red]Task not found: {task_id}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Forgot {match}[/green]")


@app.command()
def run(
    prompt: str = typer.Argument(..., help="Prompt for the background agent"),
    agent: str = typer.Option("general", "-a", "--agent", help="Agent to run"),
    description: str = typer.Option("CLI task", "-d", "--description", help="Short description"),
    parent: str = typer.Option("", "-p", "--parent", help="Parent session id to notify"),
    timeout: int = typer.Option(600_000, "-t", "--timeout", help="Max wait in ms"),
) -> None:
    """Launch one task against a running session server and print its result."""
    try:
        output = asyncio.run(_run_task(prompt, agent, description, parent, timeout))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(130)
    except Exception as e:
        log.error("Task run failed", error=str(e))
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(Markdown(output))


async def _run_task(prompt: str, agent: str, description: str, parent: str, timeout: int) -> str:
    cfg = get_config()
    service = OpencodeClient.from_config(cfg.server)
    manager = TaskManager(service, config=cfg)
    try:
        await manager.start()
        task = await manager.launch(
            LaunchInput(
                description=description,
                prompt=prompt,
                agent=agent,
                parent_session_id=parent,
            )
        )
        console.print(f"[cyan]Launched {short_id(task.session_id)}[/cyan]")
        finished = await manager.wait_for_task(task.session_id, timeout, suppress_notification=True)
        if finished is None:
            return f"Task was deleted: {task.session_id}"
        if finished.status != COMPLETED:
            return format_task_status(finished)
        manager.mark_result_retrieved(finished)
        return format_task_result(finished, await manager.get_task_messages(finished.session_id))
    finally:
        await manager.shutdown()
        await service.close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
