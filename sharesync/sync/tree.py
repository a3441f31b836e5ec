"""Tree sync — replace named subtrees of a destination with the source copy."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from sharesync.errors import SyncFailed

logger = logging.getLogger(__name__)


def sync_subtree(source_root: str | Path, dest_root: str | Path, subtree: str) -> bool:
    """Overwrite ``dest_root/subtree`` with ``source_root/subtree``.

    This is a total replacement: files that only existed in the destination
    subtree are gone afterwards. A missing source subtree is not an error;
    nothing is touched and False is returned.

    Raises:
        SyncFailed: If deleting or copying fails.
    """
    source = Path(source_root) / subtree
    dest = Path(dest_root) / subtree

    if not source.is_dir():
        logger.warning("No '%s' directory in %s, skipping", subtree, source_root)
        return False

    try:
        if dest.is_symlink() or dest.is_file():
            dest.unlink()
        elif dest.exists():
            logger.info("Removing existing %s", dest)
            shutil.rmtree(dest)
        shutil.copytree(source, dest, symlinks=True)
    except (OSError, shutil.Error) as e:
        raise SyncFailed(f"Failed to sync {source} to {dest}: {e}") from e

    logger.info("Synced %s -> %s", source, dest)
    return True


def sync_subtrees(
    source_root: str | Path, dest_root: str | Path, subtrees: Iterable[str]
) -> list[str]:
    """Sync each subtree in order and return the names that were copied."""
    return [name for name in subtrees if sync_subtree(source_root, dest_root, name)]
