"""Typer CLI entrypoint for Harvester."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, TargetConfig
from .engine import ThreadPoolManager
from .errors import ConfigFileError, HarvestError
from .logging_conf import available_target_logs, configure_logging, log_dir, tail_log, target_log_path
from .orchestrator import Orchestrator
from .pipeline import RunSummary

app = typer.Typer(
    help="Harvester command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
target_app = typer.Typer(
    name="target",
    help="Target configuration commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log inspection commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    orchestrator: Orchestrator


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    orchestrator = Orchestrator(config_repository=repository, thread_pool=thread_pool)
    return AppState(repository=repository, orchestrator=orchestrator)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _render_targets_table(targets: Sequence[TargetConfig]) -> Table:
    table = Table(
        title=f"Targets · {len(targets)} configured",
        box=box.SIMPLE_HEAD,
        show_lines=False,
    )
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Location", style="magenta", overflow="fold")
    table.add_column("Limit", style="green", justify="right")
    table.add_column("Rounds", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Reveal", style="yellow")
    for target in targets:
        table.add_row(
            target.name,
            target.location,
            str(target.record_limit),
            str(target.round_budget),
            str(target.retry_budget),
            target.reveal.mode,
        )
    return table


def _render_summary_table(title: str, summaries: Sequence[RunSummary]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Records", style="green", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Output", overflow="fold")
    for summary in summaries:
        status_style = "green" if summary.ok else "red"
        table.add_row(
            summary.target,
            f"[{status_style}]{summary.status.value}[/{status_style}]",
            str(summary.admitted),
            str(summary.attempts),
            str(summary.duplicates),
            str(summary.output_path),
        )
    if len(summaries) > 1:
        table.add_row(
            "Total",
            f"{sum(1 for s in summaries if s.ok)}/{len(summaries)} ok",
            str(sum(s.admitted for s in summaries)),
            str(sum(s.attempts for s in summaries)),
            str(sum(s.duplicates for s in summaries)),
            "",
        )
    return table


app.add_typer(target_app, name="target", help="Manage target configurations (list/show/add/remove)")
app.add_typer(log_app, name="log", help="Inspect log files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    ctx.obj = build_state(verbose)


@target_app.command("list", help="List configured targets.")
def target_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        targets = state.repository.list_targets()
    except ConfigFileError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    if not targets:
        console.print(
            "No targets configured. Use `harvester target add FILE` or add files under "
            f"{state.repository.locator.targets_dir}.",
            style="yellow",
        )
        raise typer.Exit(code=0)
    console.print(_render_targets_table(targets))


@target_app.command("show", help="Print a target's effective configuration.")
def target_show(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Target name."),
) -> None:
    state = _get_state(ctx)
    try:
        target = state.repository.load_target(name)
    except FileNotFoundError:
        console.print(f"Target `{name}` not found.", style="red")
        raise typer.Exit(code=1)
    except ConfigFileError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    payload = target.model_dump(mode="json", exclude_none=True)
    console.print(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), markup=False)


@target_app.command("add", help="Validate a YAML/JSON target file and store it.")
def target_add(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Target file to import."),
    replace: bool = typer.Option(False, "--replace", help="Overwrite a target with the same name."),
) -> None:
    state = _get_state(ctx)
    try:
        target, stored = state.repository.import_target(path, replace=replace)
    except ConfigFileError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    except FileExistsError as exc:
        console.print(f"{exc}. Use --replace to overwrite.", style="yellow", markup=False)
        raise typer.Exit(code=1)
    console.print(f"Target `{target.name}` stored at {stored}", style="green")


@target_app.command("remove", help="Delete a target configuration.")
def target_remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Target name."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    state = _get_state(ctx)
    if not yes:
        confirm = typer.confirm(f"Delete target `{name}`?", default=False)
        if not confirm:
            console.print("Cancelled.", style="yellow")
            raise typer.Exit(code=0)
    if not state.repository.delete_target(name):
        console.print(f"Target `{name}` not found.", style="red")
        raise typer.Exit(code=1)
    console.print(f"Target `{name}` deleted.", style="green")


@app.command("run", help="Run one target now.")
def run_one(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Target name."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Override the record limit."),
    rounds: Optional[int] = typer.Option(None, "--rounds", min=1, help="Override the round budget."),
    retries: Optional[int] = typer.Option(
        None, "--retries", min=1, help="Override the total attempt budget."
    ),
    output: Optional[Path] = typer.Option(None, "--output", help="Write records to this file."),
    quiet: bool = typer.Option(False, "--quiet", help="Print a single result line."),
) -> None:
    state = _get_state(ctx)
    overrides = {"record_limit": limit, "round_budget": rounds, "retry_budget": retries}
    try:
        summary = state.orchestrator.run_target(name, overrides, output_path=output)
    except FileNotFoundError:
        console.print(f"Target `{name}` not found.", style="red")
        raise typer.Exit(code=1)
    except HarvestError as exc:
        console.print(f"Run aborted: {exc}", style="red", markup=False)
        raise typer.Exit(code=1)

    if summary.ok:
        console.print(
            f"Captured {summary.admitted} record(s) into {summary.output_path}", style="green"
        )
    else:
        console.print(
            f"Target `{summary.target}` failed after {summary.attempts} attempt(s); "
            f"{summary.admitted} record(s) kept in {summary.output_path}",
            style="red",
        )
    if not quiet:
        console.print(_render_summary_table(f"{summary.target} result", [summary]))
    raise typer.Exit(code=summary.exit_code)


@app.command("run-all", help="Run every configured target concurrently.")
def run_all(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        names = state.orchestrator.target_names()
    except ConfigFileError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    if not names:
        console.print("No targets configured.", style="yellow")
        raise typer.Exit(code=0)
    summaries = state.orchestrator.run_many(names)
    console.print(_render_summary_table("Batch result", summaries))
    failed = [summary.target for summary in summaries if not summary.ok]
    if failed:
        console.print("Failed targets: " + ", ".join(failed), style="red")
        raise typer.Exit(code=1)


@log_app.command("list", help="List per-target log files.")
def log_list() -> None:
    logs = list(available_target_logs())
    if not logs:
        console.print("No target logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of a log file.")
def log_show(
    target: Optional[str] = typer.Option(
        None, "--target", help="Target name (global log when omitted)."
    ),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines to show."),
) -> None:
    if target:
        path = target_log_path(target)
    else:
        path = log_dir() / "harvester.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{'Target log' if target else 'Global log'} · last {len(lines)} line(s)", style="cyan")
    console.print("".join(lines), markup=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
