"""Sync transaction — clone, snapshot, apply, commit and push, or roll back.

The run is strictly sequential::

    Start -> Cloned -> SnapshotTaken -> Synced -> Installed
          -> Committed | NoChanges -> Logged -> Done

Any error after the snapshot exists restores it (once) and ends the run in
RolledBack -> Failed. Errors before that point (clone, snapshot) fail the run
without touching anything.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sharesync.config import SyncConfig
from sharesync.errors import CloneFailed, CommandFailed, InstallFailed, RollbackFailed
from sharesync.logger import mask_secret
from sharesync.sync.changes import ChangeDescriptor, detect_changes
from sharesync.sync.manifest import ensure_scripts
from sharesync.sync.runlog import RunLog
from sharesync.sync.snapshot import Snapshot
from sharesync.sync.tree import sync_subtrees
from sharesync.utils import git_ops
from sharesync.utils.process import run_command

logger = logging.getLogger(__name__)

# [skip ci] keeps the push from triggering CI in the target repository.
COMMIT_SUBJECT = "chore: sync shared configurations [skip ci]"


class TransactionState(Enum):
    START = "start"
    CLONED = "cloned"
    SNAPSHOT_TAKEN = "snapshot_taken"
    SYNCED = "synced"
    INSTALLED = "installed"
    COMMITTED = "committed"
    NO_CHANGES = "no_changes"
    LOGGED = "logged"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class SyncStatus(Enum):
    COMMITTED = "committed"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of one run."""

    target: str
    status: SyncStatus = SyncStatus.FAILED
    state: TransactionState = TransactionState.START
    preview: list[ChangeDescriptor] = field(default_factory=list)
    changes: list[ChangeDescriptor] = field(default_factory=list)
    synced_subtrees: list[str] = field(default_factory=list)
    added_scripts: list[str] = field(default_factory=list)
    commit_message: str = ""
    commit_sha: str = ""
    log_path: Path | None = None
    snapshot_path: Path | None = None
    error: BaseException | None = None
    rollback_error: RollbackFailed | None = None
    rolled_back: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status != SyncStatus.FAILED

    def summary(self) -> str:
        if self.status == SyncStatus.COMMITTED:
            outcome = f"pushed {len(self.changes)} change(s) to {self.target}"
        elif self.status == SyncStatus.NO_CHANGES:
            outcome = f"no changes for {self.target}"
        else:
            outcome = f"FAILED for {self.target}: {self.error}"
            if self.rolled_back:
                outcome += " (working copy rolled back)"
            if self.rollback_error:
                outcome += f"; rollback also failed: {self.rollback_error}"
        return f"Sync {outcome} in {self.elapsed_seconds:.2f}s"


def compose_commit_message(
    changes: list[ChangeDescriptor], subject: str = COMMIT_SUBJECT
) -> str:
    """Subject line, blank line, then one line per change in detector order."""
    return "\n".join([subject, "", *(c.raw for c in changes)])


class SyncTransaction:
    """Runs one sync of ``config.subtrees`` into ``config.target``."""

    def __init__(self, config: SyncConfig):
        self.config = config
        self.working_copy = config.working_copy
        self._start = 0.0

    def run(self) -> SyncResult:
        """Execute the transaction. Never raises for a failed run.

        A failure is reported on the result: ``error`` holds the root cause,
        ``rollback_error`` any secondary failure while restoring.
        """
        self._start = time.monotonic()
        result = SyncResult(target=self.config.target)
        snapshot: Snapshot | None = None

        try:
            self._clone()
            self._advance(result, TransactionState.CLONED)

            snapshot = Snapshot(self.working_copy, cleanup=self.config.cleanup_snapshot)
            with snapshot:
                result.snapshot_path = snapshot.snapshot_path
                self._advance(result, TransactionState.SNAPSHOT_TAKEN)
                self._apply(result)
        except Exception as e:
            result.status = SyncStatus.FAILED
            result.error = e
            logger.error("Sync failed: %s", mask_secret(str(e), self.config.token))
            if snapshot is not None and snapshot.snapshot_path is not None:
                result.rolled_back = snapshot.rolled_back
                result.rollback_error = snapshot.rollback_error
                if snapshot.rolled_back:
                    self._advance(result, TransactionState.ROLLED_BACK)
            self._advance(result, TransactionState.FAILED)
        else:
            self._advance(result, TransactionState.DONE)
        finally:
            result.elapsed_seconds = self._elapsed()
            logger.info("Total time: %.2fs", result.elapsed_seconds)

        return result

    def _apply(self, result: SyncResult) -> None:
        config = self.config
        wc = self.working_copy

        result.preview = detect_changes(wc)
        if result.preview:
            logger.info("Pending changes before sync:")
            for change in result.preview:
                logger.info("  %s", change.raw)
        else:
            logger.info("Working copy is clean before sync")

        result.synced_subtrees = sync_subtrees(config.source_dir, wc, config.subtrees)
        result.added_scripts = ensure_scripts(wc, config.required_scripts)
        self._advance(result, TransactionState.SYNCED)

        git_ops.set_identity(wc, config.git_user_name, config.git_user_email)
        self._install()
        self._advance(result, TransactionState.INSTALLED)

        git_ops.stage_all(wc)
        result.changes = detect_changes(wc)
        if not result.changes:
            logger.info("No changes to commit")
            result.status = SyncStatus.NO_CHANGES
            self._advance(result, TransactionState.NO_CHANGES)
            return

        result.commit_message = compose_commit_message(result.changes)
        result.commit_sha = git_ops.commit(wc, result.commit_message)
        git_ops.push(wc, secret=config.token)
        result.status = SyncStatus.COMMITTED
        self._advance(result, TransactionState.COMMITTED)

        run_log = RunLog(
            target=config.target,
            source_dir=str(config.source_dir),
            changes=result.changes,
            elapsed_seconds=self._elapsed(),
            commit_sha=result.commit_sha,
        )
        result.log_path = run_log.write(config.log_dir)
        logger.info("Run log written to %s", result.log_path)
        self._advance(result, TransactionState.LOGGED)

    def _clone(self) -> None:
        wc = self.working_copy
        if wc.exists():
            logger.info("Removing stale working copy %s", wc)
            try:
                shutil.rmtree(wc)
            except OSError as e:
                raise CloneFailed(f"Cannot remove stale working copy {wc}: {e}") from e
        wc.parent.mkdir(parents=True, exist_ok=True)
        git_ops.clone_repo(self.config.clone_url, wc, secret=self.config.token)

    def _install(self) -> None:
        lockfile = self.working_copy / self.config.lockfile
        if not lockfile.is_file():
            logger.info("No %s found, skipping install", self.config.lockfile)
            return
        command, *args = self.config.install_command
        logger.info("Installing dependencies with %s", " ".join(self.config.install_command))
        try:
            run_command(command, args, cwd=self.working_copy)
        except CommandFailed as e:
            raise InstallFailed(f"Dependency install failed: {e}") from e

    def _advance(self, result: SyncResult, state: TransactionState) -> None:
        logger.debug("State: %s -> %s", result.state.value, state.value)
        result.state = state

    def _elapsed(self) -> float:
        return time.monotonic() - self._start


def run_sync(config: SyncConfig) -> SyncResult:
    """Validate ``config`` and run one transaction."""
    config.validate()
    return SyncTransaction(config).run()
