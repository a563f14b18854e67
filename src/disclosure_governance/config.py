"""Config file loading and auto-discovery for Disclosure Governance.

Searches for ``disclosure-governance.yaml`` in the current directory and
parent directories, parses it, and resolves the store path against the
config file's location.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from disclosure_governance.completeness.exceptions import DEFAULT_MIN_JUSTIFICATION_LENGTH

CONFIG_FILENAME = "disclosure-governance.yaml"


@dataclass(frozen=True)
class GovernanceConfig:
    """Parsed Disclosure Governance project configuration."""

    config_path: Path | None = None
    store: str | None = None
    min_justification_length: int = DEFAULT_MIN_JUSTIFICATION_LENGTH
    permissions: dict[str, list[str]] | None = field(default=None, hash=False)


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``disclosure-governance.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> GovernanceConfig:
    """Load a Disclosure Governance config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``GovernanceConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return GovernanceConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> GovernanceConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    store = data.get("store")
    if store is not None and store != ":memory:":
        store = str((config_path.parent / store).resolve())

    min_length = data.get("min_justification_length", DEFAULT_MIN_JUSTIFICATION_LENGTH)
    if not isinstance(min_length, int) or min_length < 0:
        msg = f"min_justification_length must be a non-negative integer in {config_path}"
        raise ValueError(msg)

    permissions = data.get("permissions")
    if permissions is not None:
        if not isinstance(permissions, dict):
            msg = f"permissions must be a mapping of actor id to action patterns in {config_path}"
            raise ValueError(msg)
        permissions = {str(actor): [str(p) for p in patterns or []] for actor, patterns in permissions.items()}

    return GovernanceConfig(
        config_path=config_path,
        store=store,
        min_justification_length=min_length,
        permissions=permissions,
    )
