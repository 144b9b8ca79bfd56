"""
Atomic JSON state-file publisher.

Readers of the state file must never see a half-written document, so every
publish writes a complete temporary file next to the target and renames it
over the target in one step. The temporary file takes over the owner, group
and permission bits of the file it replaces, so a state file that an operator
chowned or chmodded keeps those settings across updates.

Operations:
- atomic_write_text(path, text): write-to-temp, fsync, copy metadata, rename.
- StatePublisher.publish(document): serialize and atomically replace.

CHANGELOG:
- 2026-10-18: Always raise PublishError even when temp cleanup fails
- 2026-10-18: Initial creation, replaces the plain write_text health file

TODO:
- None
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import secrets
import stat
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PublishError(Exception):
    """Raised when the state file could not be replaced."""


def _temp_path_for(path: Path) -> Path:
    """Return a collision-resistant sibling path keeping *path*'s extension."""
    nonce = f"{os.getpid()}.{time.time_ns()}.{secrets.token_hex(4)}"
    return path.with_name(f"{path.stem}.{nonce}{path.suffix}")


def _copy_metadata(source: os.stat_result, target: Path) -> None:
    """Best-effort copy of owner, group and mode bits onto *target*."""
    try:
        os.chown(target, source.st_uid, source.st_gid)
    except OSError as exc:
        logger.warning("Could not copy ownership onto %s: %s", target, exc)
    try:
        os.chmod(target, stat.S_IMODE(source.st_mode))
    except OSError as exc:
        logger.warning("Could not copy permissions onto %s: %s", target, exc)


def atomic_write_text(path: str | Path, text: str) -> None:
    """Atomically replace *path* with *text*.

    The temporary file lives in the same directory as *path* so the final
    ``os.replace`` stays on one filesystem.

    Args:
        path: Target file path.
        text: Complete new file content.

    Raises:
        PublishError: If the temporary file could not be created, written or
            renamed. The target keeps its previous content.
    """
    path = Path(path)
    tmp = _temp_path_for(path)

    try:
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except OSError as exc:
        raise PublishError(f"cannot create temporary file for {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())

        try:
            existing = os.stat(path)
        except FileNotFoundError:
            existing = None
        if existing is not None:
            _copy_metadata(existing, tmp)

        os.replace(tmp, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise PublishError(f"cannot publish {path}: {exc}") from exc


class StatePublisher:
    """Publishes the latest state document to a fixed path.

    Args:
        path: Filesystem path for the state JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def publish(self, document: dict[str, Any]) -> None:
        """Serialize *document* as pretty-printed JSON and replace the file.

        Raises:
            PublishError: If the file could not be replaced.
        """
        atomic_write_text(self.path, json.dumps(document, indent=2) + "\n")
        logger.debug("Published state to %s", self.path)
