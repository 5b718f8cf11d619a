from __future__ import annotations
import json
import logging
import os
from typing import Optional
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from .config import WatchConfig, load_config
from .tracker import identity_of, parse_start_from
from .watcher import Action, LogWatcher

app = typer.Typer(help="logwatcher - follow a log file across rotations")
console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _resolve_config(
    config: Optional[str],
    start: Optional[str],
    strict: bool,
    poll_interval: Optional[float],
    max_poll_interval: Optional[float],
    truncation: bool,
) -> WatchConfig:
    cfg = load_config(config) if config else WatchConfig()
    if start is not None:
        cfg.start_from = start
    if strict:
        cfg.strict_start = True
    if poll_interval is not None:
        cfg.poll_interval = poll_interval
    if max_poll_interval is not None:
        cfg.max_poll_interval = max_poll_interval
    if truncation:
        cfg.detect_truncation = True
    cfg.validate()
    # parse early so a bad --from fails before the file is opened
    cfg.start_policy()
    return cfg


@app.command()
def follow(
    file: str = typer.Option(..., "--file", "-f", help="Path to the log file to follow (tail -F)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config with a 'watch' section"),
    start: Optional[str] = typer.Option(None, "--from", help="Start position: 'start', 'end' or a byte offset (with --strict)"),
    strict: bool = typer.Option(False, "--strict", help="Reject unknown --from values instead of falling back to 'end'"),
    poll_interval: Optional[float] = typer.Option(None, "--poll", help="Polling interval seconds"),
    max_poll_interval: Optional[float] = typer.Option(None, "--max-poll", help="Back off up to this many seconds while idle"),
    truncation: bool = typer.Option(False, "--truncation", help="Restart at byte 0 when the file shrinks in place"),
    json_out: bool = typer.Option(False, "--json", help="Output JSON lines with offset/length/text"),
    count: int = typer.Option(0, "--count", "-n", help="Stop after N lines (0 = run until Ctrl+C)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging on stderr"),
):
    """
    Print every line appended to FILE, following it across rotations.
    """
    _setup_logging(verbose)
    try:
        cfg = _resolve_config(config, start, strict, poll_interval, max_poll_interval, truncation)
        watcher = LogWatcher.from_config(file, cfg)
    except FileNotFoundError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)
    except PermissionError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)
    except OSError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)
    except ValueError as e:
        err_console.print(f"[bold red]Configuration Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)

    delivered = 0

    def on_line(offset: int, length: int, text: str) -> Action:
        nonlocal delivered
        if json_out:
            print(json.dumps({"offset": offset, "length": length, "text": text}, ensure_ascii=False), flush=True)
        else:
            console.print(text, markup=False, highlight=False, soft_wrap=True)
        delivered += 1
        if count and delivered >= count:
            return Action.STOP
        return Action.NONE

    if not json_out and not count:
        err_console.print(f"[green]Following[/green] {escape(file)}  (Ctrl+C to stop)")
        err_console.print(f"start={cfg.start_from} | poll={cfg.poll_interval}s")

    with watcher:
        try:
            watcher.watch(on_line)
        except KeyboardInterrupt:
            err_console.print("[yellow]Stopped.[/yellow]")


@app.command()
def identity(
    file: str = typer.Option(..., "--file", "-f", help="Path to the log file"),
    json_out: bool = typer.Option(False, "--json", help="Output JSON instead of a table"),
):
    """
    Show the device/inode identity used to detect rotation of FILE.
    """
    try:
        ident = identity_of(file)
        size = os.stat(file).st_size
    except FileNotFoundError:
        err_console.print(f"[bold red]Error:[/bold red] Log file not found: {escape(file)}", style="red")
        raise typer.Exit(1)
    except OSError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)

    data = {"path": file, "device": ident.device, "inode": ident.inode, "size": size}
    if json_out:
        print(json.dumps(data, ensure_ascii=False))
        raise typer.Exit(0)

    table = Table(title="File identity")
    table.add_column("Path")
    table.add_column("Device", justify="right")
    table.add_column("Inode", justify="right")
    table.add_column("Size", justify="right")
    table.add_row(file, str(ident.device), str(ident.inode), f"{size:,}")
    console.print(table)


@app.command("check-start")
def check_start(
    value: str = typer.Argument(..., help="Start policy text to parse"),
    strict: bool = typer.Option(False, "--strict", help="Use strict parsing"),
):
    """
    Show how a --from value is interpreted.
    """
    try:
        policy = parse_start_from(value, strict=strict)
    except ValueError as e:
        err_console.print(f"[bold red]Configuration Error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(1)
    console.print(str(policy))


if __name__ == "__main__":
    app()
