"""
FlowSync error taxonomy.

Fetch errors are local to one instance and skip it for the sweep.
Commit store errors that threaten repository consistency abort the
sweep. Configuration errors are fatal at startup.
"""

from __future__ import annotations

from typing import Optional, Sequence


class FlowSyncError(Exception):
    """Base class for every error raised by FlowSync."""


class ConfigurationError(FlowSyncError):
    """Instance list missing, malformed, or without enabled instances."""


class FetchError(FlowSyncError):
    """Base class for failures while reading a remote instance."""


class TransportError(FetchError):
    """The request never produced an HTTP response (DNS, refused, timeout)."""


class RemoteError(FetchError):
    """The instance answered with a non-success HTTP status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {_preview(body)}")


class DecodeError(FetchError):
    """The response body is not a JSON array of chatflows."""

    def __init__(self, body: str, reason: str = "response is not valid JSON"):
        self.body = body
        self.reason = reason
        super().__init__(f"{reason}: {_preview(body)}")


class ArchivalMoveError(FlowSyncError):
    """Moving a live flow file into its deleted/ folder failed."""

    def __init__(self, source: str, destination: str, reason: str):
        self.source = source
        self.destination = destination
        super().__init__(f"cannot move {source} -> {destination}: {reason}")


class CommitStoreError(FlowSyncError):
    """Base class for version-control backend failures."""


class GitCommandError(CommitStoreError):
    """A git invocation exited non-zero or timed out."""

    def __init__(
        self,
        args: Sequence[str],
        returncode: Optional[int],
        stderr: str = "",
    ):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        status = "timed out" if returncode is None else f"exit {returncode}"
        super().__init__(
            f"git {' '.join(self.args_list)} ({status}): {stderr.strip()}"
        )


class PreSyncError(CommitStoreError):
    """Resetting the working tree to the remote branch failed."""


class CommitError(CommitStoreError):
    """Staging or committing the sweep's changes failed."""


def _preview(body: str, limit: int = 200) -> str:
    text = (body or "").strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text
