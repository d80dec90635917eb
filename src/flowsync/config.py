"""
Configuration loading -- YAML file first, environment on top.

    FLOWISE_INSTANCES_JSON   JSON array of {name, url, apiKey, enabled}
    SYNC_INTERVAL_MINUTES    minutes between sweeps (>= 1, default 1)
    GIT_REMOTE_URL           push target; pushing is skipped when unset
    FLOWSYNC_REPO_PATH       backup repository location
    FLOWSYNC_BRANCH          branch to commit and push

The CLI loads a local .env before calling into this module.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import FlowSyncConfig

logger = logging.getLogger("flowsync.config")

INSTANCES_ENV = "FLOWISE_INSTANCES_JSON"
INTERVAL_ENV = "SYNC_INTERVAL_MINUTES"
REMOTE_ENV = "GIT_REMOTE_URL"
REPO_PATH_ENV = "FLOWSYNC_REPO_PATH"
BRANCH_ENV = "FLOWSYNC_BRANCH"


def parse_instances_json(raw: str) -> list:
    """Decode the instance list from its environment form.

    Container runtimes sometimes hand the value over with escaped
    quotes (``[{\\"name\\": ...}]``); those are unescaped first.

    Raises:
        ConfigurationError: If the value is not a JSON array.
    """
    text = raw.strip()
    if '\\"' in text:
        text = text.replace('\\"', '"')
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"{INSTANCES_ENV} is not valid JSON: {exc}"
        ) from exc
    if not isinstance(data, list):
        raise ConfigurationError(f"{INSTANCES_ENV} must be a JSON array")
    return data


def parse_interval(raw: Optional[str]) -> int:
    """Interval in minutes; anything unusable falls back to 1."""
    if raw is None or not raw.strip():
        return 1
    try:
        minutes = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using 1 minute", INTERVAL_ENV, raw)
        return 1
    if minutes < 1:
        logger.warning("%s must be >= 1, using 1 minute", INTERVAL_ENV)
        return 1
    return minutes


def _read_config_file(config_file: Path) -> dict:
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {config_file}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_file}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file} must contain a mapping")
    return data


def load_config(
    config_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> FlowSyncConfig:
    """Build and validate the runtime configuration.

    Args:
        config_file: Optional YAML file with FlowSyncConfig keys.
        env: Environment to read overrides from. Defaults to os.environ.

    Returns:
        Validated FlowSyncConfig with at least one enabled instance.

    Raises:
        ConfigurationError: On missing or invalid instances, a bad file,
            duplicate instance names, or no enabled instance.
    """
    env = os.environ if env is None else env
    data: dict = {}

    if config_file is not None:
        data.update(_read_config_file(Path(config_file).expanduser()))

    if env.get(INSTANCES_ENV):
        data["instances"] = parse_instances_json(env[INSTANCES_ENV])
    if INTERVAL_ENV in env:
        data["sync_interval_minutes"] = parse_interval(env.get(INTERVAL_ENV))
    if env.get(REMOTE_ENV):
        data["git_remote_url"] = env[REMOTE_ENV]
    if env.get(REPO_PATH_ENV):
        data["repo_path"] = env[REPO_PATH_ENV]
    if env.get(BRANCH_ENV):
        data["branch"] = env[BRANCH_ENV]

    if not data.get("instances"):
        raise ConfigurationError(
            f"No instances configured. Set {INSTANCES_ENV} or list "
            "instances in the config file."
        )

    try:
        config = FlowSyncConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    config.repo_path = config.repo_path.expanduser()

    names = [i.name for i in config.instances]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(
            f"Duplicate instance names: {', '.join(duplicates)}"
        )

    if not config.enabled_instances():
        raise ConfigurationError(
            "No enabled instances found in configuration. "
            "Please enable at least one instance."
        )

    return config
