"""Change detection — what git reports as changed in a working copy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sharesync.utils import git_ops

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """Status letter from ``git diff --name-status``."""

    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"
    COPIED = "C"
    TYPE_CHANGED = "T"
    UNMERGED = "U"
    UNKNOWN = "X"


@dataclass(frozen=True)
class ChangeDescriptor:
    """One changed path.

    ``raw`` is the line exactly as git printed it; it is what ends up in
    commit messages and run logs.
    """

    kind: ChangeKind
    path: str
    raw: str
    old_path: str = ""
    score: int | None = None  # Similarity for renames/copies

    @classmethod
    def parse(cls, line: str) -> "ChangeDescriptor":
        parts = line.split("\t")
        status = parts[0].strip()
        try:
            kind = ChangeKind(status[:1])
        except ValueError:
            kind = ChangeKind.UNKNOWN
        score = int(status[1:]) if status[1:].isdigit() else None

        if kind in (ChangeKind.RENAMED, ChangeKind.COPIED) and len(parts) >= 3:
            return cls(kind=kind, path=parts[2], raw=line, old_path=parts[1], score=score)
        path = parts[1] if len(parts) > 1 else ""
        return cls(kind=kind, path=path, raw=line, score=score)

    @property
    def display_path(self) -> str:
        return f"{self.old_path} -> {self.path}" if self.old_path else self.path

    def __str__(self) -> str:
        return self.raw


def parse_name_status(output: str) -> list[ChangeDescriptor]:
    """Parse ``--name-status`` output, skipping blank lines, preserving order."""
    return [ChangeDescriptor.parse(line) for line in output.splitlines() if line.strip()]


def detect_changes(working_copy: str | Path) -> list[ChangeDescriptor]:
    """Return the working copy's changes relative to its last commit.

    Untracked files only show up once staged. An empty list means the tree
    matches HEAD.
    """
    output = git_ops.diff_name_status(Path(working_copy))
    changes = parse_name_status(output)
    logger.debug("Detected %d change(s) in %s", len(changes), working_copy)
    return changes


def has_deletions(changes: list[ChangeDescriptor]) -> bool:
    return any(c.kind == ChangeKind.DELETED for c in changes)


def format_changes(changes: list[ChangeDescriptor]) -> str:
    """One descriptor per line, in detector order."""
    return "\n".join(c.raw for c in changes)
