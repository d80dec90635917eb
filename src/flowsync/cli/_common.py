"""Shared helpers for the CLI command modules."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from rich.console import Console

from ..config import REPO_PATH_ENV, load_config
from ..models import FlowSyncConfig

console = Console()
logger = logging.getLogger("flowsync.cli")


def build_config(
    config_file: Optional[Path] = None,
    repo: Optional[Path] = None,
    interval: Optional[int] = None,
) -> FlowSyncConfig:
    """Load configuration and apply command-line overrides.

    Raises:
        ConfigurationError: Propagated from load_config.
    """
    config = load_config(config_file)
    updates: dict = {}
    if repo is not None:
        updates["repo_path"] = Path(repo).expanduser()
    if interval is not None:
        updates["sync_interval_minutes"] = interval
    return config.model_copy(update=updates) if updates else config


def default_repo() -> Path:
    """Repository from the environment, read after .env is loaded."""
    return Path(os.environ.get(REPO_PATH_ENV) or ".").expanduser()


def redact_url(url: Optional[str]) -> str:
    """Hide credentials embedded in a URL (https://token@host/...)."""
    if not url:
        return "(not set)"
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=f"***@{host}"))
