"""
File materializer -- applies writes and archival moves to the working tree.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, Union

from ..errors import ArchivalMoveError

logger = logging.getLogger("flowsync.sync.materializer")

RelPath = Union[str, PurePosixPath]


def format_flow(document: Any) -> str:
    """Stable, diff-friendly JSON: 4-space indent, unicode kept as-is."""
    return json.dumps(document, indent=4, ensure_ascii=False)


class FileMaterializer:
    """Writes flow files below a repository root.

    Args:
        root: Working tree root; every path passed in is relative to it.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, rel_path: RelPath) -> Path:
        return self.root / Path(*PurePosixPath(rel_path).parts)

    def write_json(self, rel_path: RelPath, document: Any) -> Path:
        target = self.resolve(rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(format_flow(document), encoding="utf-8")
        return target

    def read_json(self, rel_path: RelPath) -> Any:
        return json.loads(self.resolve(rel_path).read_text(encoding="utf-8"))

    def archive(self, source: RelPath, destination: RelPath) -> Path:
        """Move a live flow file into its ``deleted/`` folder.

        A previous archived copy at ``destination`` is replaced.

        Raises:
            ArchivalMoveError: The source is missing or the move failed.
        """
        src = self.resolve(source)
        dest = self.resolve(destination)
        if not src.is_file():
            raise ArchivalMoveError(str(source), str(destination), "source file is missing")
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dest))
        except OSError as exc:
            raise ArchivalMoveError(str(source), str(destination), str(exc)) from exc
        logger.debug("Archived %s -> %s", source, destination)
        return dest
