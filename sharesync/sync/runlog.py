"""Plain-text record of each sync that pushed a commit."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sharesync.sync.changes import ChangeDescriptor


@dataclass(frozen=True)
class RunLog:
    """What a successful sync did."""

    target: str
    source_dir: str
    changes: list[ChangeDescriptor] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    commit_sha: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def render(self) -> str:
        lines = [
            f"Timestamp: {self.timestamp.isoformat()}",
            f"Target: {self.target}",
            f"Source: {self.source_dir}",
        ]
        if self.commit_sha:
            lines.append(f"Commit: {self.commit_sha}")
        lines.append(f"Changes ({len(self.changes)}):")
        lines.extend(f"  {c.raw}" for c in self.changes)
        lines.append(f"Elapsed: {self.elapsed_seconds:.2f}s")
        return "\n".join(lines) + "\n"

    def filename(self) -> str:
        stamp = self.timestamp.strftime("%Y-%m-%dT%H-%M-%S")
        millis = self.timestamp.microsecond // 1000
        return f"sync-{self.target}-{stamp}-{millis:03d}.log"

    def write(self, log_dir: str | Path) -> Path:
        """Write the log under ``log_dir`` (created if missing) and return its path."""
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        path = log_dir / self.filename()
        path.write_text(self.render(), encoding="utf-8")
        return path
