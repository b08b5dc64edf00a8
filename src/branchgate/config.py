"""Layered configuration for branch-gated test selection.

Settings are read from four layers, highest precedence first:

1. pytest command-line options
2. ``BRANCHGATE_*`` environment variables
3. pytest ini options (``branchgate_*``)
4. ``.branchgate.yaml`` in the pytest root directory

A value that is absent or blank at one layer falls through to the next.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from branchgate.exceptions import BranchGateConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".branchgate.yaml"

ENABLED_ENV_VAR = "BRANCHGATE_ENABLED"
ITBRANCHES_ENV_VAR = "BRANCHGATE_ITBRANCHES"
CURRENT_BRANCH_ENV_VAR = "BRANCHGATE_CURRENT_BRANCH"
MODE_ENV_VAR = "BRANCHGATE_MODE"
CACHE_ENV_VAR = "BRANCHGATE_CACHE"

_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_FALSY_VALUES = {"0", "false", "no", "off"}
_SCALAR_TYPES = (str, int, float, bool)

# Setting name -> environment variable
ENV_VARS: dict[str, str] = {
    "enabled": ENABLED_ENV_VAR,
    "itbranches": ITBRANCHES_ENV_VAR,
    "current_branch": CURRENT_BRANCH_ENV_VAR,
    "mode": MODE_ENV_VAR,
    "cache": CACHE_ENV_VAR,
}


class GateMode(StrEnum):
    """What happens to a test the gate rejects."""

    SKIP = "skip"
    DESELECT = "deselect"


@dataclass(frozen=True, slots=True)
class BranchGateConfig:
    """Resolved branchgate settings. Read once per session, never mutated."""

    enabled: bool = False
    it_branches: frozenset[str] = field(default_factory=frozenset)
    current_branch: str | None = None
    mode: GateMode = GateMode.SKIP
    cache_branch: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "enabled": self.enabled,
            "itbranches": sorted(self.it_branches),
            "current_branch": self.current_branch,
            "mode": str(self.mode),
            "cache": self.cache_branch,
        }


def parse_branch_list(raw: object) -> frozenset[str]:
    """Parse a comma-separated branch list into a set of branch names.

    Whitespace around names is stripped and empty entries are dropped.
    A YAML list is accepted as well, each entry parsed the same way, and a
    bare scalar is read as its text. Anything else (a mapping, nested lists)
    is malformed and yields an empty set.

    Examples:
        >>> sorted(parse_branch_list("release,hotfix"))
        ['hotfix', 'release']
        >>> parse_branch_list(None)
        frozenset()
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, (list, tuple)):
        entries = list(raw)
    else:
        entries = [raw]

    chunks: list[str] = []
    for entry in entries:
        if not isinstance(entry, _SCALAR_TYPES):
            logger.warning("ignoring malformed itbranches value %r", raw)
            return frozenset()
        chunks.append(str(entry))

    names: set[str] = set()
    for chunk in chunks:
        for name in chunk.split(","):
            stripped = name.strip()
            if stripped:
                names.add(stripped)
    return frozenset(names)


def parse_bool(value: object, setting: str) -> bool:
    """Interpret a configuration value as a boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY_VALUES:
        return True
    if text in _FALSY_VALUES:
        return False
    raise BranchGateConfigError(
        f"Invalid boolean for '{setting}': {value!r} (expected one of "
        f"{', '.join(sorted(_TRUTHY_VALUES | _FALSY_VALUES))})"
    )


def parse_mode(value: object) -> GateMode:
    try:
        return GateMode(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(mode.value for mode in GateMode)
        raise BranchGateConfigError(
            f"Invalid mode {value!r} (expected one of: {choices})"
        ) from None


def load_config_file(root: Path) -> dict[str, object]:
    """Load settings from ``.branchgate.yaml`` under ``root``.

    Returns an empty dict when the file does not exist. Scalars are kept as
    written (``1.10`` stays ``"1.10"``, ``true`` stays ``"true"``) so branch
    names survive unchanged; typed settings are parsed by resolve_config().

    Raises:
        BranchGateConfigError: If the file cannot be read or parsed.
    """
    config_path = root / CONFIG_FILENAME
    if not config_path.exists():
        return {}

    yaml = YAML(typ="base")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except (OSError, YAMLError) as exc:
        raise BranchGateConfigError(f"Failed to parse {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise BranchGateConfigError(
            f"Expected a mapping at the top of {config_path}, got {type(payload).__name__}"
        )
    logger.debug("loaded %s: %s", config_path, payload)
    return payload


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not value
    return False


def _first_set(setting: str, layers: list[Mapping[str, object]]) -> object | None:
    for layer in layers:
        value = layer.get(setting)
        if not _is_blank(value):
            return value
    return None


def _branch_name(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, _SCALAR_TYPES):
        logger.warning("ignoring malformed current_branch value %r", value)
        return None
    return str(value).strip() or None


def environ_settings(environ: Mapping[str, str]) -> dict[str, object]:
    """Pick branchgate settings out of an environment mapping."""
    return {
        setting: environ[var]
        for setting, var in ENV_VARS.items()
        if var in environ
    }


def resolve_config(
    options: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    ini: Mapping[str, object] | None = None,
    file_values: Mapping[str, object] | None = None,
) -> BranchGateConfig:
    """Merge configuration layers into a BranchGateConfig.

    Args:
        options: Command-line values keyed by setting name
        environ: Process environment (only ``BRANCHGATE_*`` keys are read)
        ini: pytest ini values keyed by setting name
        file_values: Parsed ``.branchgate.yaml`` contents

    Returns:
        The effective configuration.

    Raises:
        BranchGateConfigError: If ``enabled`` is invalid, or gating is
            enabled and ``mode`` or ``cache`` is invalid.
    """
    layers: list[Mapping[str, object]] = [
        options or {},
        environ_settings(environ or {}),
        ini or {},
        file_values or {},
    ]

    enabled_value = _first_set("enabled", layers)
    enabled = parse_bool(enabled_value, "enabled") if enabled_value is not None else False
    it_branches = parse_branch_list(_first_set("itbranches", layers))
    current_branch = _branch_name(_first_set("current_branch", layers))

    if not enabled:
        # mode and cache only matter once gating is on
        return BranchGateConfig(it_branches=it_branches, current_branch=current_branch)

    mode = _first_set("mode", layers)
    cache = _first_set("cache", layers)
    return BranchGateConfig(
        enabled=True,
        it_branches=it_branches,
        current_branch=current_branch,
        mode=parse_mode(mode) if mode is not None else GateMode.SKIP,
        cache_branch=parse_bool(cache, "cache") if cache is not None else True,
    )
