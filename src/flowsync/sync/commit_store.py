"""
Commit store -- the version-control backend behind the flow tree.

The engine only talks to the CommitStore interface. GitCommitStore
drives the git CLI through subprocess, one bounded call per primitive.

Per sweep the store moves through:

    UNINITIALIZED -> READY -> SYNCED -> COMMITTED -> PUSHED | PUSH_FAILED

A failed push keeps the local commit. A failed commit is discarded so
the next sweep redoes it from the recorded state.
"""

from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ..errors import CommitError, CommitStoreError, GitCommandError, PreSyncError
from ..models import PushResult, PushStatus, RepositoryPhase

logger = logging.getLogger("flowsync.sync.commit_store")

README_NAME = "README.md"
README_WARNING = """# Automated FlowSync Backup Repository

**This repository is managed automatically by the FlowSync service.**

All files and their history are generated based on the state of your configured Flowise instances. Manual changes made directly to this repository will be overwritten on the next sync cycle.

To modify a flow, please use the Flowise UI. FlowSync will detect the change and commit the new version automatically.
"""

# Substrings of git's push output that mean "fix your remote or credentials".
REJECTION_MARKERS = (
    "does not appear to be a git repository",
    "could not read from remote repository",
    "permission denied",
    "denied to",
    "unable to access",
    "error: 403",
    "authentication failed",
)

REMOTE_HINT = (
    "No valid git remote configured or you do not have permission to push. "
    "Set GIT_REMOTE_URL or add a remote manually."
)
LOCAL_INTACT = "Your flows have still been saved locally and are up to date."


def format_commit_message(updated: int, archived: int) -> str:
    """``Sync: 2 updated, 1 archived flow(s)``, dropping zero clauses."""
    parts = []
    if updated:
        parts.append(f"{updated} updated")
    if archived:
        parts.append(f"{archived} archived")
    return f"Sync: {', '.join(parts)} flow(s)"


def classify_push_failure(message: str) -> PushStatus:
    lowered = message.lower()
    if any(marker in lowered for marker in REJECTION_MARKERS):
        return PushStatus.REJECTED
    return PushStatus.FAILED


class CommitStore(ABC):
    """Abstract version-control backend for the flow tree."""

    phase: RepositoryPhase = RepositoryPhase.UNINITIALIZED

    @abstractmethod
    def ensure_repository(self) -> bool:
        """Create the repository with its README warning if missing.

        Returns:
            True if a repository was created, False if one existed.
        """

    @abstractmethod
    def ensure_remote(self, url: Optional[str]) -> None:
        """Point the remote at ``url``; log and do nothing when None."""

    @abstractmethod
    def has_remote(self) -> bool:
        """Whether a push remote is configured."""

    @abstractmethod
    def remote_has_branch(self, branch: str) -> bool:
        """Whether the remote already carries ``branch``."""

    @abstractmethod
    def sync_to_remote_head(self) -> bool:
        """Hard-reset to the remote branch if it exists.

        Returns:
            True if the working tree was reset, False if the remote has
            no branch yet.

        Raises:
            PreSyncError: Fetch or reset failed.
        """

    @abstractmethod
    def stage(self, paths: Sequence[str]) -> None:
        """Stage additions, modifications and removals for ``paths``."""

    @abstractmethod
    def commit(self, message: str) -> None:
        """Commit staged changes."""

    @abstractmethod
    def discard(self, paths: Sequence[str]) -> None:
        """Return ``paths`` to their last committed content.

        Paths absent from the last commit are deleted. Used to undo a
        sweep whose commit failed, so the next sweep redoes it.

        Raises:
            CommitStoreError: The last commit could not be read.
        """

    @abstractmethod
    def push(self, branch: Optional[str] = None) -> PushResult:
        """Push ``branch``; failures are classified, never raised."""


class GitCommitStore(CommitStore):
    """CommitStore backed by the git command line.

    Args:
        repo_path: Working tree of the backup repository.
        branch: Branch to commit to and push.
        remote: Remote name.
        bot_name: Author and committer name for sync commits.
        bot_email: Author and committer email for sync commits.
        timeout: Seconds allowed for each git invocation.
    """

    def __init__(
        self,
        repo_path: Path,
        branch: str = "main",
        remote: str = "origin",
        bot_name: str = "FlowSync Bot",
        bot_email: str = "bot@flowsync.io",
        timeout: float = 120.0,
    ):
        self.repo_path = Path(repo_path)
        self.branch = branch
        self.remote = remote
        self.bot_name = bot_name
        self.bot_email = bot_email
        self.timeout = timeout
        self.phase = RepositoryPhase.UNINITIALIZED

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update({
            "GIT_AUTHOR_NAME": self.bot_name,
            "GIT_AUTHOR_EMAIL": self.bot_email,
            "GIT_COMMITTER_NAME": self.bot_name,
            "GIT_COMMITTER_EMAIL": self.bot_email,
            "GIT_TERMINAL_PROMPT": "0",
        })
        return env

    def _git(self, *args: str) -> str:
        return self._git_raw(*args).strip()

    def _git_raw(self, *args: str) -> str:
        """Run one git command in the repository.

        Returns:
            Unmodified stdout.

        Raises:
            GitCommandError: Non-zero exit, timeout, or git not runnable.
        """
        cmd = ["git", *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.repo_path),
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=False,
                timeout=self.timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(args, None, f"no response after {self.timeout}s") from exc
        except OSError as exc:
            raise GitCommandError(args, None, str(exc)) from exc

        if result.returncode != 0:
            logger.debug(
                "Git command failed: %s -> %s", " ".join(cmd), result.stderr.strip(),
            )
            raise GitCommandError(args, result.returncode, result.stderr or result.stdout)
        return result.stdout

    def ensure_repository(self) -> bool:
        self.repo_path.mkdir(parents=True, exist_ok=True)
        if (self.repo_path / ".git").exists():
            self.phase = RepositoryPhase.READY
            return False

        logger.info("Initializing git repository in %s", self.repo_path)
        self._git("init")
        self._git("checkout", "-B", self.branch)
        (self.repo_path / README_NAME).write_text(README_WARNING, encoding="utf-8")
        self._git("add", README_NAME)
        self._git("commit", "-m", "Add README warning for manual edits")
        self.phase = RepositoryPhase.READY
        return True

    def _current_remote_url(self) -> Optional[str]:
        try:
            return self._git("remote", "get-url", self.remote) or None
        except GitCommandError:
            return None

    def ensure_remote(self, url: Optional[str]) -> None:
        if not url:
            logger.warning(
                "No GIT_REMOTE_URL configured. Using existing remote or add one manually."
            )
            return

        current = self._current_remote_url()
        if current is None:
            logger.info("Setting git remote %s from GIT_REMOTE_URL", self.remote)
            self._git("remote", "add", self.remote, url)
        elif current != url:
            logger.info("Updating git remote %s to use GIT_REMOTE_URL", self.remote)
            self._git("remote", "set-url", self.remote, url)

    def has_remote(self) -> bool:
        return self._current_remote_url() is not None

    def remote_has_branch(self, branch: str) -> bool:
        if not self.has_remote():
            return False
        try:
            out = self._git("ls-remote", "--heads", self.remote, branch)
        except GitCommandError as exc:
            logger.debug("ls-remote failed: %s", exc)
            return False
        return bool(out)

    def sync_to_remote_head(self) -> bool:
        if not self.remote_has_branch(self.branch):
            self.phase = RepositoryPhase.SYNCED
            return False

        logger.info("Fetching and resetting to latest remote state to ensure consistency...")
        try:
            self._git("fetch", self.remote)
            self._git("reset", "--hard", f"{self.remote}/{self.branch}")
        except GitCommandError as exc:
            raise PreSyncError(f"Pre-sync with remote failed: {exc}") from exc
        self.phase = RepositoryPhase.SYNCED
        return True

    def stage(self, paths: Sequence[str]) -> None:
        present, missing = _split_existing(self.repo_path, paths)
        try:
            if present:
                self._git("add", "-A", "--", *present)
            if missing:
                self._git("rm", "--cached", "--ignore-unmatch", "-q", "--", *missing)
        except GitCommandError as exc:
            raise CommitError(f"Staging failed: {exc}") from exc

    def commit(self, message: str) -> None:
        try:
            self._git("commit", "-m", message)
        except GitCommandError as exc:
            raise CommitError(f"Commit failed: {exc}") from exc
        self.phase = RepositoryPhase.COMMITTED

    def discard(self, paths: Sequence[str]) -> None:
        paths = list(dict.fromkeys(paths))
        if not paths:
            return
        # Reads HEAD only, so this works while the index is locked.
        try:
            listing = self._git_raw("ls-tree", "-r", "-z", "--name-only", "HEAD", "--", *paths)
            committed = {
                rel: self._git_raw("show", f"HEAD:{rel}")
                for rel in listing.split("\0") if rel
            }
        except GitCommandError as exc:
            raise CommitStoreError(f"Could not read last commit: {exc}") from exc

        for rel in paths:
            target = self.repo_path / rel
            if rel in committed:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(committed[rel], encoding="utf-8")
            elif target.is_file():
                target.unlink()

        try:
            self._git("reset", "-q", "HEAD", "--", *paths)
        except GitCommandError as exc:
            logger.warning("Could not unstage discarded paths: %s", exc)

    def push(self, branch: Optional[str] = None) -> PushResult:
        branch = branch or self.branch
        if not self.has_remote():
            self.phase = RepositoryPhase.PUSH_FAILED
            return PushResult(status=PushStatus.NO_REMOTE, detail=REMOTE_HINT)

        try:
            self._git("push", "-u", self.remote, branch)
        except CommitStoreError as exc:
            self.phase = RepositoryPhase.PUSH_FAILED
            return PushResult(status=classify_push_failure(str(exc)), detail=str(exc))

        self.phase = RepositoryPhase.PUSHED
        return PushResult(status=PushStatus.PUSHED)


def _split_existing(root: Path, paths: Iterable[str]) -> tuple[list[str], list[str]]:
    present: list[str] = []
    missing: list[str] = []
    for rel in dict.fromkeys(paths):
        (present if (root / rel).exists() else missing).append(rel)
    return present, missing
