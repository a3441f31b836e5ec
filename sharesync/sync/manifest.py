"""Manifest patching — make sure package.json carries the required scripts."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from sharesync.errors import ManifestParseError

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"

# Scripts every synced repository is expected to expose. Existing entries
# with the same name are left as they are.
DEFAULT_REQUIRED_SCRIPTS: dict[str, str] = {
    "check-all": "yarn lint && yarn type-check",
    "lint": "eslint . --ext .ts,.tsx",
    "type-check": "tsc --noEmit",
}


def ensure_scripts(working_copy: str | Path, required: Mapping[str, str]) -> list[str]:
    """Insert every missing ``required`` script into ``package.json``.

    The file is only rewritten when something was inserted. Key order of the
    existing document is kept; new scripts are appended in ``required`` order.

    Returns:
        Names of the scripts that were added (empty if none, or if the
        working copy has no package.json).

    Raises:
        ManifestParseError: If package.json is not a JSON object.
    """
    path = Path(working_copy) / MANIFEST_FILE
    if not path.is_file():
        logger.info("No %s in %s, skipping script check", MANIFEST_FILE, working_copy)
        return []

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError(f"{path} must contain a JSON object")

    scripts = data.setdefault("scripts", {})
    if not isinstance(scripts, dict):
        raise ManifestParseError(f"'scripts' in {path} must be an object")

    added = []
    for name, command in required.items():
        if name not in scripts:
            scripts[name] = command
            added.append(name)

    if added:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("Added script(s) to %s: %s", MANIFEST_FILE, ", ".join(added))
    else:
        logger.debug("All required scripts already present in %s", path)
    return added
