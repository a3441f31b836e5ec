"""Error types raised by sharesync.

Every failure of a sync step is a ``SyncError`` subclass so the CLI and the
transaction can handle them uniformly.
"""

from __future__ import annotations

from collections.abc import Sequence


class SyncError(Exception):
    """Base class for all sharesync errors."""


class ConfigError(SyncError):
    """Required configuration is missing or invalid."""


class CommandFailed(SyncError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        exit_status: int | None = None,
        stderr: str = "",
    ):
        self.command = command
        self.args_list = list(args)
        self.exit_status = exit_status
        self.stderr = stderr
        cmdline = " ".join([command, *self.args_list])
        message = f"Command failed ({exit_status}): {cmdline}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class CloneFailed(SyncError):
    """Cloning the target repository failed."""


class BackupFailed(SyncError):
    """Taking the snapshot of the working copy failed."""


class SyncFailed(SyncError):
    """Deleting or copying a subtree failed."""


class ManifestParseError(SyncError):
    """package.json exists but is not a valid JSON object."""


class InstallFailed(SyncError):
    """The package manager install command failed."""


class CommitFailed(SyncError):
    """Staging or committing the changes failed."""


class PushFailed(SyncError):
    """Pushing the commit to the remote failed."""


class RollbackFailed(SyncError):
    """Restoring the snapshot failed.

    Always secondary: it is reported next to the error that triggered the
    rollback and never replaces it.
    """
