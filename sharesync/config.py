"""Configuration for a sync run, in one explicit object.

A config can be built directly, loaded from a YAML file, or read from the
environment (the CI case)::

    source_dir: ./checkout
    target: web-frontend
    org: my-org
    subtrees: [shared, .github/workflows]
    required_scripts:
      lint: eslint .
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from sharesync.errors import ConfigError
from sharesync.sync.manifest import DEFAULT_REQUIRED_SCRIPTS
from sharesync.utils.git_ops import build_clone_url

ENV_PREFIX = "SHARESYNC_"


@dataclass
class SyncConfig:
    """Inputs for one sync run."""

    source_dir: Path
    target: str
    token: str = ""
    workspace: Path = field(default_factory=Path.cwd)
    org: str = "my-org"
    host: str = "github.com"
    subtrees: list[str] = field(default_factory=lambda: ["shared"])
    required_scripts: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_REQUIRED_SCRIPTS)
    )
    git_user_name: str = "github-actions[bot]"
    git_user_email: str = "github-actions[bot]@users.noreply.github.com"
    lockfile: str = "yarn.lock"
    install_command: list[str] = field(default_factory=lambda: ["yarn", "install", "--frozen-lockfile"])
    repo_url: str = ""  # Clone from here instead of the host/org URL
    cleanup_snapshot: bool = False
    _source_given: bool = field(default=True, init=False, repr=False, compare=False)

    def __post_init__(self):
        # Path("") is Path("."); remember whether a source was given at all.
        self._source_given = bool(str(self.source_dir or "").strip())
        self.source_dir = Path(self.source_dir or "")
        self.workspace = Path(self.workspace)
        self.subtrees = list(self.subtrees)
        self.install_command = list(self.install_command)

    @property
    def working_copy(self) -> Path:
        return self.workspace / "temp" / self.target

    @property
    def log_dir(self) -> Path:
        return self.workspace / "logs"

    @property
    def clone_url(self) -> str:
        if self.repo_url:
            return self.repo_url
        return build_clone_url(self.host, self.org, self.target, self.token)

    def validate(self) -> None:
        """Raise ConfigError unless the config is usable for a run."""
        if not self.target:
            raise ConfigError("A target repository name is required")
        if "/" in self.target or self.target in (".", ".."):
            raise ConfigError(f"Invalid target repository name: {self.target!r}")
        if not self.repo_url and not self.token:
            raise ConfigError("An access token is required to clone the target")
        if not self._source_given:
            raise ConfigError("A source directory is required")
        if not self.source_dir.is_dir():
            raise ConfigError(f"Source directory not found: {self.source_dir}")
        if not self.install_command:
            raise ConfigError("install_command must not be empty")

    @classmethod
    def from_dict(cls, data: Mapping) -> "SyncConfig":
        data = {key: value for key, value in data.items() if value is not None}
        known = {f.name for f in fields(cls) if f.init}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config key(s): {', '.join(sorted(unknown))}")
        if "source_dir" not in data or "target" not in data:
            raise ConfigError("Config needs at least 'source_dir' and 'target'")
        return cls(**{key: _coerce(key, value) for key, value in data.items()})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncConfig":
        """Build a config from ``SHARESYNC_*`` variables.

        The workspace falls back to ``GITHUB_WORKSPACE`` and then the current
        directory. ``SHARESYNC_SUBTREES`` is a comma-separated list.
        """
        env = os.environ if environ is None else environ
        data: dict = {
            "source_dir": env.get(f"{ENV_PREFIX}SOURCE_DIR", ""),
            "target": env.get(f"{ENV_PREFIX}TARGET", ""),
            "token": env.get(f"{ENV_PREFIX}TOKEN", ""),
        }
        workspace = env.get(f"{ENV_PREFIX}WORKSPACE") or env.get("GITHUB_WORKSPACE")
        if workspace:
            data["workspace"] = workspace
        for key in ("org", "host", "repo_url", "git_user_name", "git_user_email", "lockfile"):
            value = env.get(f"{ENV_PREFIX}{key.upper()}")
            if value:
                data[key] = value
        subtrees = env.get(f"{ENV_PREFIX}SUBTREES")
        if subtrees:
            data["subtrees"] = parse_csv(subtrees)
        return cls(**data)


def load_config(path: str | Path | None = None, **overrides) -> SyncConfig:
    """Load a config from a YAML file, then apply every non-None override."""
    data: dict = {}
    if path:
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        data.update(loaded)

    data.update({k: v for k, v in overrides.items() if v is not None})
    return SyncConfig.from_dict(data)


def parse_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


_PATH_KEYS = {"source_dir", "workspace"}
_BOOL_KEYS = {"cleanup_snapshot"}
_LIST_KEYS = {"subtrees", "install_command"}
_MAPPING_KEYS = {"required_scripts"}


def _coerce(key: str, value):
    """Check a loaded value against the type its field expects.

    Numbers are accepted where a string is expected (YAML reads a repository
    called ``2048`` as an int). ``subtrees`` may be a comma-separated string.
    """
    if key in _PATH_KEYS:
        if not isinstance(value, (str, Path)):
            raise ConfigError(f"'{key}' must be a path, got {type(value).__name__}")
        return value
    if key in _BOOL_KEYS:
        if not isinstance(value, bool):
            raise ConfigError(f"'{key}' must be true or false, got {value!r}")
        return value
    if key in _LIST_KEYS:
        if key == "subtrees" and isinstance(value, str):
            return parse_csv(value)
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"'{key}' must be a list of strings, got {value!r}")
        return list(value)
    if key in _MAPPING_KEYS:
        if not isinstance(value, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in value.items()
        ):
            raise ConfigError(f"'{key}' must map names to command strings")
        return dict(value)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return str(value)
