"""
Sync engine -- one instance at a time, one commit per sweep.

    sweep  ->  ensure repo + remote -> reset to remote HEAD
           ->  for each enabled instance: fetch -> reconcile -> save state
           ->  stage -> commit -> push

Instances are processed strictly in sequence: they share one working
tree and one repository lock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import CommitError, CommitStoreError, FetchError, PreSyncError
from ..models import (
    FlowSyncConfig,
    InstanceConfig,
    InstanceSyncResult,
    PushStatus,
    SweepReport,
)
from ..naming import FLOWS_DIR
from .commit_store import (
    LOCAL_INTACT,
    CommitStore,
    GitCommitStore,
    format_commit_message,
)
from .fetcher import FlowiseFetcher
from .materializer import FileMaterializer
from .reconciler import Reconciler
from .state import JsonStateStore, StateStore

logger = logging.getLogger("flowsync.sync.engine")


class SyncEngine:
    """Reconciles every enabled instance into the backup repository.

    The instance list and remote URL are read from ``self.config`` on
    every sweep, so swapping the config object takes effect on the next
    sweep. Repository location, branch and timeouts are bound at
    construction.

    Args:
        config: Runtime configuration.
        commit_store: Version-control backend. Defaults to git.
        state_store: Recorded-state backend. Defaults to JSON files.
        fetcher: Remote reader. Defaults to the Flowise HTTP API.
    """

    def __init__(
        self,
        config: FlowSyncConfig,
        commit_store: Optional[CommitStore] = None,
        state_store: Optional[StateStore] = None,
        fetcher: Optional[FlowiseFetcher] = None,
    ):
        self.config = config
        self.repo_path = Path(config.repo_path).expanduser()
        self.commit_store = commit_store or GitCommitStore(
            self.repo_path,
            branch=config.branch,
            remote=config.remote_name,
            bot_name=config.bot_name,
            bot_email=config.bot_email,
            timeout=config.git_timeout,
        )
        self.state_store = state_store or JsonStateStore(self.repo_path)
        self.fetcher = fetcher or FlowiseFetcher(timeout=config.request_timeout)
        self.materializer = FileMaterializer(self.repo_path)
        self.reconciler = Reconciler(
            self.materializer, relocate_renamed=config.relocate_renamed,
        )

    def sync_instance(self, instance: InstanceConfig) -> InstanceSyncResult:
        """Fetch one instance and reconcile its flow tree.

        State is written back only when a flow was written or archived.

        Raises:
            FetchError: The instance could not be read.
        """
        logger.info("Syncing flows from instance: %s (%s)", instance.name, instance.url)

        flows = self.fetcher.fetch(instance)
        last_state = self.state_store.load(instance.name)
        result = self.reconciler.reconcile(instance.name, flows, last_state)

        state_file = None
        if result.changed:
            self.state_store.save(instance.name, result.new_state)
            state_file = self.state_store.state_file_name(instance.name)
            logger.info(
                "%d flows updated, %d flows archived for %s",
                len(result.writes), len(result.archivals), instance.name,
            )
        else:
            logger.info("No changes detected for %s", instance.name)

        return InstanceSyncResult(
            instance=instance.name,
            written=[w.path for w in result.writes],
            archived=result.archivals,
            state_file=state_file,
        )

    def run_sweep(self) -> SweepReport:
        """Run one full reconciliation pass over all enabled instances.

        A failed pre-sync aborts before any instance is touched. A failed
        instance is logged and skipped. A failed commit aborts the rest
        of the sweep and rolls back its file changes. None of these raise.

        Returns:
            SweepReport describing what happened.
        """
        report = SweepReport(started_at=datetime.now(timezone.utc))
        logger.info("Starting multi-instance flow sync check...")

        store = self.commit_store
        try:
            store.ensure_repository()
        except CommitStoreError as exc:
            return self._abort(report, f"Repository setup failed: {exc}")

        try:
            store.ensure_remote(self.config.git_remote_url)
        except CommitStoreError as exc:
            logger.warning("Could not configure git remote: %s", exc)

        try:
            store.sync_to_remote_head()
        except PreSyncError as exc:
            return self._abort(report, str(exc))

        instances = self.config.enabled_instances()
        logger.info(
            "Found %d enabled instance(s): %s",
            len(instances), ", ".join(i.name for i in instances),
        )
        (self.repo_path / FLOWS_DIR).mkdir(parents=True, exist_ok=True)

        for instance in instances:
            try:
                outcome = self.sync_instance(instance)
            except FetchError as exc:
                logger.error("Failed to sync instance %s: %s", instance.name, exc)
                outcome = InstanceSyncResult(instance=instance.name, error=str(exc))
            except Exception as exc:
                logger.exception("Failed to sync instance %s", instance.name)
                outcome = InstanceSyncResult(instance=instance.name, error=str(exc))
            report.instances.append(outcome)

        if any(r.changed for r in report.instances):
            self._commit_and_push(report)
        else:
            logger.info("No changes detected across all instances.")

        report.finished_at = datetime.now(timezone.utc)
        return report

    def _commit_and_push(self, report: SweepReport) -> None:
        paths: list[str] = []
        for outcome in report.instances:
            paths.extend(outcome.written)
            for archived in outcome.archived:
                paths.append(archived.source)
                if archived.moved:
                    paths.append(archived.destination)
            if outcome.state_file:
                paths.append(outcome.state_file)

        message = format_commit_message(report.updated_count, report.archived_count)
        logger.info("Committing changes...")
        try:
            self.commit_store.stage(paths)
            self.commit_store.commit(message)
        except CommitError as exc:
            self._abort(report, str(exc))
            self._roll_back(paths)
            return

        report.committed = True
        report.commit_message = message

        logger.info("Pushing to remote repository...")
        push = self.commit_store.push(self.config.branch)
        report.push = push
        if push.status == PushStatus.PUSHED:
            logger.info("Multi-instance sync successful!")
        elif push.status == PushStatus.NO_REMOTE:
            logger.warning("Push skipped: %s", push.detail)
            logger.info(LOCAL_INTACT)
        elif push.status == PushStatus.REJECTED:
            logger.error("%s", push.detail)
            logger.info(LOCAL_INTACT)
        else:
            logger.error("Git push process failed: %s", push.detail)

    def _roll_back(self, paths: list[str]) -> None:
        """Undo the uncommitted sweep so the next one sees the same diff."""
        try:
            self.commit_store.discard(paths)
        except CommitStoreError as exc:
            logger.error("Could not roll back uncommitted changes: %s", exc)
            return
        logger.info("Rolled back %d uncommitted path(s) for the next cycle.", len(paths))

    def _abort(self, report: SweepReport, reason: str) -> SweepReport:
        logger.error("CRITICAL: %s. Aborting this cycle.", reason)
        report.aborted = True
        report.abort_reason = reason
        report.finished_at = datetime.now(timezone.utc)
        return report
