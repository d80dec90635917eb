"""Status command: what the backup repository currently tracks."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ._common import console, default_repo
from ..naming import DELETED_DIR, FLOWS_DIR
from ..sync.state import JsonStateStore

STATE_PREFIX = ".flow_state_"


def collect_status(repo: Path) -> list[dict]:
    """Per-instance counts of tracked and archived flows.

    Instances are discovered from both state files and flows/ folders.
    """
    store = JsonStateStore(repo)
    names = {
        p.name[len(STATE_PREFIX):-len(".json")]
        for p in repo.glob(f"{STATE_PREFIX}*.json")
    }
    flows_dir = repo / FLOWS_DIR
    if flows_dir.is_dir():
        names.update(p.name for p in flows_dir.iterdir() if p.is_dir())

    rows = []
    for name in sorted(names):
        state = store.load(name)
        categories = sorted({entry.category for entry in state.values()})
        archived = len(list((flows_dir / name).glob(f"*/{DELETED_DIR}/*.json")))
        rows.append({
            "instance": name,
            "tracked": len(state),
            "archived": archived,
            "categories": categories,
        })
    return rows


def register_status_commands(main: click.Group) -> None:
    """Register the status command."""

    @main.command("status")
    @click.option(
        "--repo", type=click.Path(file_okay=False, path_type=Path),
        default=None, help="Backup repository (default: FLOWSYNC_REPO_PATH or .).",
    )
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def status(repo: Optional[Path], json_out: bool):
        """Show tracked and archived flows per instance."""
        repo_path = (repo or default_repo()).expanduser()
        rows = collect_status(repo_path) if repo_path.is_dir() else []

        if json_out:
            click.echo(json.dumps({"repo": str(repo_path), "instances": rows}, indent=2))
            return

        if not rows:
            console.print(f"\n  [yellow]No synced instances in {repo_path}.[/]\n")
            return

        table = Table(title=f"FlowSync — {repo_path}")
        table.add_column("Instance", style="cyan")
        table.add_column("Tracked", justify="right")
        table.add_column("Archived", justify="right")
        table.add_column("Categories", style="dim")
        for row in rows:
            table.add_row(
                row["instance"],
                str(row["tracked"]),
                str(row["archived"]),
                ", ".join(row["categories"]) or "-",
            )
        console.print(table)
