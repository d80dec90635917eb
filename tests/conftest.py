"""Shared test fixtures for flowsync."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest

from flowsync.errors import CommitError, PreSyncError
from flowsync.models import (
    FlowEntity,
    FlowSyncConfig,
    InstanceConfig,
    PushResult,
    PushStatus,
    RepositoryPhase,
)
from flowsync.sync.commit_store import CommitStore


def make_flow(
    flow_id: str = "abc123",
    name: str = "Test Flow",
    updated: str = "T1",
    flow_type: Optional[str] = "chatflow",
    flow_data: Optional[str] = '{"a":1}',
) -> FlowEntity:
    """Build a FlowEntity the way the fetcher would from the API."""
    return FlowEntity.from_api({
        "id": flow_id,
        "name": name,
        "flowData": flow_data,
        "updatedDate": updated,
        "type": flow_type,
    })


class RecordingCommitStore(CommitStore):
    """CommitStore double that records calls instead of running git."""

    def __init__(
        self,
        remote: bool = True,
        fail_presync: bool = False,
        fail_commit: bool = False,
        push_status: PushStatus = PushStatus.PUSHED,
    ):
        self.calls: list[tuple] = []
        self.staged: list[str] = []
        self.messages: list[str] = []
        self.remote = remote
        self.fail_presync = fail_presync
        self.fail_commit = fail_commit
        self.push_status = push_status
        self.phase = RepositoryPhase.UNINITIALIZED

    def ensure_repository(self) -> bool:
        self.calls.append(("ensure_repository",))
        self.phase = RepositoryPhase.READY
        return False

    def ensure_remote(self, url):
        self.calls.append(("ensure_remote", url))

    def has_remote(self) -> bool:
        return self.remote

    def remote_has_branch(self, branch: str) -> bool:
        return self.remote

    def sync_to_remote_head(self) -> bool:
        self.calls.append(("sync_to_remote_head",))
        if self.fail_presync:
            raise PreSyncError("fetch failed")
        self.phase = RepositoryPhase.SYNCED
        return self.remote

    def stage(self, paths):
        self.calls.append(("stage", list(paths)))
        self.staged.extend(paths)

    def commit(self, message: str) -> None:
        self.calls.append(("commit", message))
        if self.fail_commit:
            raise CommitError("nothing to commit")
        self.messages.append(message)
        self.phase = RepositoryPhase.COMMITTED

    def discard(self, paths):
        self.calls.append(("discard", list(paths)))

    def push(self, branch=None) -> PushResult:
        self.calls.append(("push", branch))
        self.phase = (
            RepositoryPhase.PUSHED
            if self.push_status == PushStatus.PUSHED
            else RepositoryPhase.PUSH_FAILED
        )
        return PushResult(status=self.push_status, detail="recorded")

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


class StaticFetcher:
    """Fetcher double returning canned flows, or raising, per instance."""

    def __init__(self, flows_by_instance: Optional[dict] = None):
        self.flows_by_instance = flows_by_instance or {}
        self.fetched: list[str] = []

    def fetch(self, instance: InstanceConfig):
        self.fetched.append(instance.name)
        outcome = self.flows_by_instance.get(instance.name, [])
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Empty backup repository directory."""
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def config(repo: Path) -> FlowSyncConfig:
    """Two enabled instances and one disabled one."""
    return FlowSyncConfig(
        instances=[
            InstanceConfig(name="inst", url="http://flowise.local", apiKey="key-1111", enabled=True),
            InstanceConfig(name="dev", url="http://dev.local/", apiKey="key-2222", enabled=True),
            InstanceConfig(name="off", url="http://off.local", enabled=False),
        ],
        repo_path=repo,
    )


@pytest.fixture
def instances_env() -> dict:
    """Environment with a valid FLOWISE_INSTANCES_JSON."""
    return {
        "FLOWISE_INSTANCES_JSON": json.dumps([
            {"name": "prod", "url": "https://prod.example", "apiKey": "secret-prod", "enabled": True},
            {"name": "staging", "url": "https://staging.example", "apiKey": "secret-stg", "enabled": False},
        ]),
    }
