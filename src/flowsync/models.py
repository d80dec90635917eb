"""
FlowSync data models -- remote flows, recorded state, configuration, results.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from .naming import UNCATEGORIZED, normalize_category


def _opaque_token(value: Any) -> Optional[str]:
    """Version tokens are compared, never parsed; keep them as strings."""
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


class PushStatus(str, Enum):
    """Outcome of pushing the sync branch."""

    PUSHED = "pushed"
    NO_REMOTE = "no_remote"
    REJECTED = "rejected"
    FAILED = "failed"


class RepositoryPhase(str, Enum):
    """Where the commit store stands within the current sweep."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SYNCED = "synced"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PUSH_FAILED = "push_failed"


class FlowEntity(BaseModel):
    """One chatflow as returned by a Flowise instance.

    Read-only from FlowSync's point of view: it is observed and copied,
    never modified.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    category: str = UNCATEGORIZED
    updated_at: Optional[str] = None
    payload: Any = None

    @field_validator("updated_at", mode="before")
    @classmethod
    def coerce_updated(cls, value: Any) -> Optional[str]:
        return _opaque_token(value)

    @classmethod
    def from_api(cls, data: dict) -> "FlowEntity":
        """Build an entity from a raw ``/api/v1/chatflows`` item.

        Args:
            data: One object of the chatflows array.

        Returns:
            FlowEntity with ``type`` mapped to a normalized category.
        """
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            category=normalize_category(data.get("type")),
            updated_at=data.get("updatedDate"),
            payload=data.get("flowData"),
        )

    @property
    def has_payload(self) -> bool:
        return self.payload is not None and self.payload != ""


class StateEntry(BaseModel):
    """Last observed metadata for one flow id.

    Serialized with the on-disk keys ``updatedAt``, ``name``,
    ``fileName`` and ``type``; ``updatedDate`` is accepted on load.
    """

    model_config = ConfigDict(populate_by_name=True)

    updated_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("updatedAt", "updatedDate", "updated_at"),
        serialization_alias="updatedAt",
    )
    name: str = ""
    file_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("fileName", "file_name"),
        serialization_alias="fileName",
    )
    category: str = Field(
        default=UNCATEGORIZED,
        validation_alias=AliasChoices("type", "category"),
        serialization_alias="type",
    )

    @field_validator("updated_at", mode="before")
    @classmethod
    def coerce_updated(cls, value: Any) -> Optional[str]:
        return _opaque_token(value)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, value: Any) -> str:
        return value or UNCATEGORIZED

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, value: Any) -> str:
        return value or ""

    def to_disk(self) -> dict:
        return self.model_dump(by_alias=True)


class InstanceConfig(BaseModel):
    """A Flowise deployment to sync from."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("apiKey", "api_key"),
        serialization_alias="apiKey",
        repr=False,
    )
    enabled: bool = False

    @field_validator("name")
    @classmethod
    def safe_name(cls, value: str) -> str:
        value = value.strip()
        if value in (".", "..") or any(sep in value for sep in ("/", "\\")):
            raise ValueError(
                f"instance name {value!r} cannot be used as a directory name"
            )
        return value

    def masked_key(self) -> str:
        """API key reduced to its last four characters for display."""
        if not self.api_key:
            return "(none)"
        return "****" + self.api_key[-4:]


class FlowSyncConfig(BaseModel):
    """Complete runtime configuration for a FlowSync process."""

    instances: list[InstanceConfig] = Field(default_factory=list)
    sync_interval_minutes: int = Field(default=1, ge=1)
    git_remote_url: Optional[str] = None
    repo_path: Path = Path(".")
    branch: str = "main"
    remote_name: str = "origin"
    request_timeout: float = Field(default=30.0, gt=0)
    git_timeout: float = Field(default=120.0, gt=0)
    bot_name: str = "FlowSync Bot"
    bot_email: str = "bot@flowsync.io"
    relocate_renamed: bool = False

    def enabled_instances(self) -> list[InstanceConfig]:
        return [i for i in self.instances if i.enabled]


class WriteResult(BaseModel):
    """A flow file written during reconciliation."""

    entity_id: str
    path: str


class ArchiveResult(BaseModel):
    """A flow moved (or found already gone) during archival."""

    entity_id: str
    source: str
    destination: str
    moved: bool = True


class ReconcileResult(BaseModel):
    """Outcome of reconciling one instance."""

    new_state: dict[str, StateEntry] = Field(default_factory=dict)
    writes: list[WriteResult] = Field(default_factory=list)
    archivals: list[ArchiveResult] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.writes or self.archivals)


class InstanceSyncResult(BaseModel):
    """Paths touched while syncing one instance, or the error that stopped it."""

    instance: str
    written: list[str] = Field(default_factory=list)
    archived: list[ArchiveResult] = Field(default_factory=list)
    state_file: Optional[str] = None
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.written or self.archived)

    @property
    def ok(self) -> bool:
        return self.error is None


class PushResult(BaseModel):
    """Classified result of a push attempt."""

    status: PushStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == PushStatus.PUSHED


class SweepReport(BaseModel):
    """Summary of one reconciliation sweep across all instances."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    instances: list[InstanceSyncResult] = Field(default_factory=list)
    aborted: bool = False
    abort_reason: Optional[str] = None
    committed: bool = False
    commit_message: Optional[str] = None
    push: Optional[PushResult] = None

    @property
    def updated_count(self) -> int:
        return sum(len(r.written) for r in self.instances)

    @property
    def archived_count(self) -> int:
        return sum(len(r.archived) for r in self.instances)

    @property
    def failed_instances(self) -> list[str]:
        return [r.instance for r in self.instances if not r.ok]
