import logging
from typing import Optional

import typer
from pydantic import ValidationError
from rich import print
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.table import Table

from .config import build_config
from .directories import list_subdirectories
from .dispatcher import execute_run
from .display import render_snapshot, render_summary

app = typer.Typer(help="mdirrun - run the same commands in every subdirectory, in parallel, with retries and archived logs.")


def setup_logging(debug: bool = False, live: bool = False):
    """INFO by default, DEBUG with --debug; WARNING while the live view owns the terminal."""
    if debug:
        level = logging.DEBUG
    elif live:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# -----------------------------
# Run
# -----------------------------
@app.command()
def run(
    dir: Optional[str] = typer.Option(None, "--dir", "-d", help="Directory whose subdirectories are processed"),
    commands: Optional[str] = typer.Option(None, "--commands", "-c", help="Commands to execute, separated by semicolons"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-n", help="Number of directories processed at once (default: MDIRRUN_CONCURRENCY or 10)"),
    retries: Optional[int] = typer.Option(None, "--retries", "-r", help="Retries for a failing command (default: MDIRRUN_RETRIES or 0)"),
    subdirs: Optional[str] = typer.Option(None, "--subdirs", help="Entry-point subdirectories to run commands in, separated by semicolons"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Main log path (default: <dir>/script.log)"),
    live: bool = typer.Option(True, "--live/--no-live", help="Show live per-directory progress"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Run the commands in every subdirectory of --dir."""
    setup_logging(debug, live)

    if not dir:
        dir = typer.prompt("Enter the directory in which to execute")
    if not commands:
        commands = typer.prompt("Enter the commands to execute, separated by semicolons")

    try:
        config = build_config(dir, commands, concurrency, retries, subdirs, log_file)
    except ValidationError as e:
        print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console = Console()
    try:
        if live:
            with Live(render_snapshot([]), console=console, refresh_per_second=10) as view:
                result = execute_run(config, render=lambda records: view.update(render_snapshot(records)))
        else:
            result = execute_run(config)
            console.print(render_snapshot(result.records))
    except OSError as e:
        print(f"[red]Run failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print()
    console.print(render_summary(result))


# -----------------------------
# Discovery
# -----------------------------
@app.command("dirs")
def dirs_cmd(dir: str = typer.Option(".", "--dir", "-d", help="Directory to scan")):
    """List the subdirectories a run would process."""
    try:
        names = list_subdirectories(dir)
    except OSError as e:
        print(f"[red]Failed to get directories:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    t = Table(title=f"Directories in {dir}")
    t.add_column("#")
    t.add_column("directory")
    for i, name in enumerate(names, start=1):
        t.add_row(str(i), name)
    Console().print(t)
