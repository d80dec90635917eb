"""
Flow reconciliation -- fetch, diff, materialize, archive, commit.

The Flowise API is always the source of truth. Local edits never
survive a sweep; deleted flows are archived, never erased.
"""

from .commit_store import CommitStore, GitCommitStore
from .engine import SyncEngine
from .reconciler import Reconciler
from .state import JsonStateStore, StateStore

__all__ = [
    "CommitStore",
    "GitCommitStore",
    "JsonStateStore",
    "Reconciler",
    "StateStore",
    "SyncEngine",
]
