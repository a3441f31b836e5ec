"""Snapshots — full copies of a working copy, used for rollback.

A snapshot lives next to the directory it protects, at
``<path>_backup_<unixMillis>``. Restoring deletes the current tree and renames
the snapshot back into place, so a restored snapshot no longer exists on disk.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from sharesync.errors import BackupFailed, RollbackFailed

logger = logging.getLogger(__name__)

SNAPSHOT_MARKER = "_backup_"


def snapshot_path_for(path: Path, millis: int | None = None) -> Path:
    """Return the snapshot location for ``path`` at ``millis`` (default: now)."""
    if millis is None:
        millis = int(time.time() * 1000)
    return path.with_name(f"{path.name}{SNAPSHOT_MARKER}{millis}")


def create_snapshot(path: str | Path) -> Path:
    """Copy the whole tree at ``path`` to a timestamped sibling directory.

    Raises:
        BackupFailed: If the copy fails. Nothing destructive should happen
            to ``path`` afterwards.
    """
    path = Path(path)
    snapshot = snapshot_path_for(path)
    try:
        shutil.copytree(path, snapshot, symlinks=True)
    except (OSError, shutil.Error) as e:
        shutil.rmtree(snapshot, ignore_errors=True)
        raise BackupFailed(f"Failed to snapshot {path} to {snapshot}: {e}") from e
    logger.info("Snapshot created at %s", snapshot)
    return snapshot


def restore_snapshot(original: str | Path, snapshot: str | Path) -> None:
    """Replace ``original`` with ``snapshot``.

    Raises:
        RollbackFailed: If the snapshot is missing or the delete/move fails.
    """
    original = Path(original)
    snapshot = Path(snapshot)
    if not snapshot.is_dir():
        raise RollbackFailed(f"Snapshot {snapshot} does not exist")
    try:
        if original.is_symlink() or original.is_file():
            original.unlink()
        elif original.exists():
            shutil.rmtree(original)
        shutil.move(str(snapshot), str(original))
    except (OSError, shutil.Error) as e:
        raise RollbackFailed(f"Failed to restore {original} from {snapshot}: {e}") from e
    logger.info("Restored %s from snapshot", original)


def find_orphaned_snapshots(path: str | Path) -> list[Path]:
    """List leftover snapshots of ``path``, oldest first."""
    path = Path(path)
    if not path.parent.is_dir():
        return []
    prefix = f"{path.name}{SNAPSHOT_MARKER}"
    found = []
    for candidate in path.parent.iterdir():
        suffix = candidate.name[len(prefix):]
        if candidate.is_dir() and candidate.name.startswith(prefix) and suffix.isdigit():
            found.append(candidate)
    return sorted(found, key=lambda p: int(p.name[len(prefix):]))


def remove_orphaned_snapshots(path: str | Path) -> list[Path]:
    """Delete every leftover snapshot of ``path`` and return what was removed."""
    removed = []
    for snapshot in find_orphaned_snapshots(path):
        shutil.rmtree(snapshot)
        logger.info("Removed orphaned snapshot %s", snapshot)
        removed.append(snapshot)
    return removed


class Snapshot:
    """Scoped snapshot of a directory.

    Use as a context manager so the working copy is restored on every error
    path::

        with Snapshot(working_copy) as snap:
            mutate(working_copy)
        # on exception: working copy restored, snap.rollback_error set if not

    The snapshot is kept on success unless ``cleanup`` is set or
    :meth:`discard` is called.
    """

    def __init__(self, path: str | Path, cleanup: bool = False):
        self.path = Path(path)
        self.cleanup = cleanup
        self.snapshot_path: Path | None = None
        self.rolled_back = False
        self.rollback_error: RollbackFailed | None = None

    def __enter__(self) -> "Snapshot":
        self.snapshot_path = create_snapshot(self.path)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.restore()
        elif self.cleanup:
            self.discard()

    @property
    def active(self) -> bool:
        return self.snapshot_path is not None and self.snapshot_path.exists()

    def restore(self) -> bool:
        """Restore the snapshot, recording rather than raising any failure."""
        if self.snapshot_path is None:
            return False
        logger.warning("Rolling back %s from %s", self.path, self.snapshot_path)
        try:
            restore_snapshot(self.path, self.snapshot_path)
        except RollbackFailed as e:
            logger.error("Rollback failed: %s", e)
            self.rollback_error = e
            return False
        self.rolled_back = True
        logger.info("Rollback completed")
        return True

    def discard(self) -> None:
        """Delete the snapshot without restoring it."""
        if self.active:
            shutil.rmtree(self.snapshot_path)
            logger.info("Removed snapshot %s", self.snapshot_path)
