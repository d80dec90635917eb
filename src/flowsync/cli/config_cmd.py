"""Config command: validate configuration without syncing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ._common import build_config, console, redact_url
from ..errors import ConfigurationError


def register_config_commands(main: click.Group) -> None:
    """Register the config command."""

    @main.command("config")
    @click.option(
        "--config", "config_file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None, help="YAML configuration file.",
    )
    def config_show(config_file: Optional[Path]):
        """Validate configuration and list instances (API keys masked)."""
        try:
            config = build_config(config_file)
        except ConfigurationError as exc:
            console.print(f"[bold red]Error:[/] {exc}")
            sys.exit(1)

        table = Table(title="Flowise instances")
        table.add_column("Name", style="cyan")
        table.add_column("URL")
        table.add_column("API key", style="dim")
        table.add_column("Enabled")
        for inst in config.instances:
            table.add_row(
                inst.name,
                inst.url,
                inst.masked_key(),
                "[green]yes[/]" if inst.enabled else "[dim]no[/]",
            )
        console.print(table)
        console.print(f"  Repository: [cyan]{config.repo_path}[/]  Branch: {config.branch}")
        console.print(f"  Remote: {redact_url(config.git_remote_url)}")
        console.print(f"  Interval: every {config.sync_interval_minutes} minute(s)\n")
