"""Process runner — execute external commands synchronously."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from sharesync.errors import CommandFailed

logger = logging.getLogger(__name__)

# Exit status reported when the executable cannot be found, as a shell would.
COMMAND_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Captured outcome of a finished command."""

    command: str
    args: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0


def run_command(
    command: str,
    args: Sequence[str] = (),
    cwd: str | Path | None = None,
) -> CommandResult:
    """Run ``command`` with ``args`` and wait for it to finish.

    Output is captured and forwarded to the logger at debug level.

    Raises:
        CommandFailed: If the process exits non-zero or cannot be started.
    """
    argv = [command, *args]
    logger.debug("Running %s (cwd=%s)", " ".join(argv), cwd or ".")

    start = time.monotonic()
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        raise CommandFailed(command, args, COMMAND_NOT_FOUND, str(e)) from e
    duration = int((time.monotonic() - start) * 1000)

    for line in proc.stdout.splitlines():
        logger.debug("[%s] %s", command, line)
    for line in proc.stderr.splitlines():
        logger.debug("[%s] %s", command, line)

    if proc.returncode != 0:
        raise CommandFailed(command, args, proc.returncode, proc.stderr)

    return CommandResult(
        command=command,
        args=list(args),
        exit_code=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
        duration_ms=duration,
    )
