"""Run command: start the sync scheduler, or run a single sweep."""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ._common import build_config, console, redact_url
from ..errors import ConfigurationError
from ..models import PushStatus, SweepReport

_PUSH_STYLE = {
    PushStatus.PUSHED: "[green]pushed[/]",
    PushStatus.NO_REMOTE: "[yellow]no remote[/]",
    PushStatus.REJECTED: "[red]rejected[/]",
    PushStatus.FAILED: "[red]failed[/]",
}


def print_report(report: SweepReport) -> None:
    """Render a sweep report as a Rich table."""
    if report.aborted:
        console.print(f"\n  [bold red]Sweep aborted:[/] {report.abort_reason}\n")
        return

    table = Table(title="Sweep summary", show_lines=False)
    table.add_column("Instance", style="cyan")
    table.add_column("Updated", justify="right")
    table.add_column("Archived", justify="right")
    table.add_column("Status")
    for outcome in report.instances:
        status = "[green]ok[/]" if outcome.ok else f"[red]{outcome.error}[/]"
        table.add_row(
            outcome.instance,
            str(len(outcome.written)),
            str(len(outcome.archived)),
            status,
        )
    console.print(table)

    if report.committed:
        push = _PUSH_STYLE.get(report.push.status, "-") if report.push else "-"
        console.print(f"  Commit: [bold]{report.commit_message}[/]  Push: {push}")
    else:
        console.print("  [dim]No changes detected across all instances.[/]")


def register_run_commands(main: click.Group) -> None:
    """Register the run command."""

    @main.command("run")
    @click.option(
        "--config", "config_file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None, help="YAML configuration file.",
    )
    @click.option(
        "--repo", type=click.Path(file_okay=False, path_type=Path),
        default=None, help="Backup repository (overrides FLOWSYNC_REPO_PATH).",
    )
    @click.option(
        "--interval", type=click.IntRange(min=1), default=None,
        help="Minutes between sweeps (overrides SYNC_INTERVAL_MINUTES).",
    )
    @click.option("--once", is_flag=True, help="Run a single sweep and exit.")
    @click.option(
        "--log-file", type=click.Path(dir_okay=False, path_type=Path),
        default=None, help="Also write logs to this file.",
    )
    @click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
    def run(
        config_file: Optional[Path],
        repo: Optional[Path],
        interval: Optional[int],
        once: bool,
        log_file: Optional[Path],
        verbose: bool,
    ):
        """Sync all enabled Flowise instances into the backup repository.

        Sweeps immediately, then every interval until stopped with
        Ctrl+C or SIGTERM. Configuration is re-read before every sweep.
        """
        from ..scheduler import SyncScheduler, setup_logging

        setup_logging(log_file, logging.DEBUG if verbose else logging.INFO)

        loader = functools.partial(build_config, config_file, repo, interval)
        try:
            config = loader()
        except ConfigurationError as exc:
            console.print(f"[bold red]Error:[/] {exc}")
            sys.exit(1)

        instances = config.enabled_instances()
        console.print(
            f"\n  [green]FlowSync[/] -> [cyan]{config.repo_path}[/]"
            f"  ({len(instances)} instance(s), every {config.sync_interval_minutes} min)"
        )
        console.print(f"  Remote: {redact_url(config.git_remote_url)}\n")

        scheduler = SyncScheduler(config, config_loader=loader)

        if once:
            report = scheduler.run_once()
            if report is None:
                console.print("[bold red]Sweep crashed; see log for details.[/]")
                sys.exit(1)
            print_report(report)
            if report.aborted:
                sys.exit(1)
            return

        scheduler.run_forever()
