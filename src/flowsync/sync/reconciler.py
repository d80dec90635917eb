"""
Reconciler -- turns (remote flows, last recorded state) into file changes.

    new flow / updatedAt changed  ->  write flows/<inst>/<cat>/<file>
    flow gone upstream            ->  move it to flows/<inst>/<cat>/deleted/
    anything else                 ->  state entry refreshed, no file touched

Running it twice against the same remote listing produces no changes
the second time.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from ..errors import ArchivalMoveError
from ..models import (
    ArchiveResult,
    FlowEntity,
    ReconcileResult,
    StateEntry,
    WriteResult,
)
from ..naming import (
    archive_path,
    derive_file_name,
    id_suffix,
    live_path,
    sanitize_name,
)
from .materializer import FileMaterializer
from .state import State

logger = logging.getLogger("flowsync.sync.reconciler")


class PayloadError(ValueError):
    """A flowData string that is not JSON."""


def decode_payload(payload: Any) -> Any:
    """flowData arrives as a JSON string; decoded documents pass through."""
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise PayloadError(str(exc)) from exc
    return payload


def recorded_file_name(flow_id: str, entry: StateEntry) -> str:
    """File name a state entry points at, rebuilt for entries that predate fileName."""
    if entry.file_name:
        return entry.file_name
    return f"{sanitize_name(entry.name)}_id_{id_suffix(flow_id)}.json"


class Reconciler:
    """Computes and applies the diff for one instance.

    Args:
        materializer: Performs the file writes and moves.
        relocate_renamed: Rewrite a flow whose name or type changed
            without an updatedAt bump, archiving the stale file.
    """

    def __init__(
        self,
        materializer: FileMaterializer,
        relocate_renamed: bool = False,
    ):
        self.materializer = materializer
        self.relocate_renamed = relocate_renamed

    def reconcile(
        self,
        instance: str,
        remote_flows: Sequence[FlowEntity],
        last_state: State,
    ) -> ReconcileResult:
        """Bring the instance's flow tree in line with ``remote_flows``.

        Args:
            instance: Instance name (first path segment under flows/).
            remote_flows: Current flows as reported by the API.
            last_state: Recorded state from the previous sync.

        Returns:
            ReconcileResult with the next state and the repo-relative
            paths written and archived.
        """
        new_state: State = dict(last_state)
        result = ReconcileResult()
        claimed: dict[tuple[str, str], str] = {}

        for flow in remote_flows:
            if not flow.has_payload:
                continue
            self._apply_flow(instance, flow, last_state.get(flow.id), new_state, result, claimed)

        remote_ids = {flow.id for flow in remote_flows}
        for flow_id, entry in last_state.items():
            if flow_id in remote_ids:
                continue
            archived = self._archive(instance, flow_id, entry)
            result.archivals.append(archived)
            new_state.pop(flow_id, None)

        result.new_state = new_state
        return result

    def _apply_flow(
        self,
        instance: str,
        flow: FlowEntity,
        previous: Optional[StateEntry],
        new_state: State,
        result: ReconcileResult,
        claimed: dict[tuple[str, str], str],
    ) -> None:
        safe_name = sanitize_name(flow.name)
        file_name = derive_file_name(flow.name, flow.id)

        owner = claimed.setdefault((flow.category, file_name), flow.id)
        if owner != flow.id:
            logger.warning(
                "Flows %s and %s both map to %s/%s; the later one wins",
                owner, flow.id, flow.category, file_name,
            )

        changed = previous is None or previous.updated_at != flow.updated_at
        moved = previous is not None and (
            recorded_file_name(flow.id, previous) != file_name
            or previous.category != flow.category
        )
        relocate = not changed and moved and self.relocate_renamed

        if changed or relocate:
            try:
                document = decode_payload(flow.payload)
            except PayloadError as exc:
                logger.warning(
                    "Skipping flow '%s' (%s): flowData is not valid JSON: %s",
                    flow.name, flow.id, exc,
                )
                return

            path = live_path(instance, flow.category, file_name)
            logger.info(
                "Change detected in flow: '%s' (Type: %s, Saving to %s)",
                flow.name, flow.category, file_name,
            )
            self.materializer.write_json(path, document)
            result.writes.append(WriteResult(entity_id=flow.id, path=path.as_posix()))

            if moved and self.relocate_renamed:
                result.archivals.append(self._archive(instance, flow.id, previous))

        new_state[flow.id] = StateEntry(
            updated_at=flow.updated_at,
            name=safe_name,
            file_name=file_name,
            category=flow.category,
        )

    def _archive(self, instance: str, flow_id: str, entry: StateEntry) -> ArchiveResult:
        file_name = recorded_file_name(flow_id, entry)
        source = live_path(instance, entry.category, file_name)
        destination = archive_path(instance, entry.category, file_name)

        logger.info(
            "Archiving deleted flow: '%s' from %s folder", file_name, entry.category,
        )
        try:
            self.materializer.archive(source, destination)
            moved = True
        except ArchivalMoveError as exc:
            logger.warning(
                "Could not archive %s, it may have been manually removed: %s",
                file_name, exc,
            )
            moved = False

        return ArchiveResult(
            entity_id=flow_id,
            source=source.as_posix(),
            destination=destination.as_posix(),
            moved=moved,
        )
