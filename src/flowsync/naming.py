"""
Naming and layout -- where a flow lives inside the backup repository.

    flows/<instance>/<category>/<name>_id_<last4>.json
    flows/<instance>/<category>/deleted/<name>_id_<last4>.json
    .flow_state_<instance>.json

All paths are repository-relative POSIX paths so they can be handed
to git unchanged.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Any

FLOWS_DIR = "flows"
DELETED_DIR = "deleted"
UNCATEGORIZED = "uncategorized"
ID_SUFFIX_LENGTH = 4

_UNSAFE = re.compile(r"[\s/\\]")


def sanitize_name(name: str) -> str:
    """Replace whitespace and path separators with underscores."""
    return _UNSAFE.sub("_", name or "")


def id_suffix(flow_id: str) -> str:
    return str(flow_id)[-ID_SUFFIX_LENGTH:]


def derive_file_name(name: str, flow_id: str) -> str:
    """File name for a flow: ``<sanitized name>_id_<last4 of id>.json``.

    Depends only on its arguments, so the same flow always lands on
    the same file no matter the order flows are listed in.
    """
    return f"{sanitize_name(name)}_id_{id_suffix(flow_id)}.json"


def normalize_category(raw: Any) -> str:
    """Lowercase the flow type; empty or missing becomes ``uncategorized``."""
    if not raw:
        return UNCATEGORIZED
    category = sanitize_name(str(raw).strip().lower())
    if category in ("", ".", ".."):
        return UNCATEGORIZED
    return category


def instance_dir(instance: str) -> PurePosixPath:
    return PurePosixPath(FLOWS_DIR) / instance


def live_path(instance: str, category: str, file_name: str) -> PurePosixPath:
    return instance_dir(instance) / category / file_name


def archive_path(instance: str, category: str, file_name: str) -> PurePosixPath:
    return instance_dir(instance) / category / DELETED_DIR / file_name


def state_file_name(instance: str) -> str:
    return f".flow_state_{instance}.json"
