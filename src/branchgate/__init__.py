"""Run tests only on the git branches they belong to."""

from __future__ import annotations

from branchgate.config import (
    BranchGateConfig,
    GateMode,
    parse_branch_list,
    resolve_config,
)
from branchgate.exceptions import (
    BranchGateConfigError,
    BranchGateError,
    BranchReadError,
    RepositoryNotFoundError,
)
from branchgate.resolver import (
    BranchContext,
    BranchResolver,
    BranchSource,
    GitBranchSource,
    Repository,
    find_repository,
)
from branchgate.selector import (
    BranchGate,
    GateDecision,
    TestDescriptor,
    should_run,
)

__version__ = "0.1.0"

__all__ = [
    "BranchContext",
    "BranchGate",
    "BranchGateConfig",
    "BranchGateConfigError",
    "BranchGateError",
    "BranchReadError",
    "BranchResolver",
    "BranchSource",
    "GateDecision",
    "GateMode",
    "GitBranchSource",
    "Repository",
    "RepositoryNotFoundError",
    "TestDescriptor",
    "find_repository",
    "parse_branch_list",
    "resolve_config",
    "should_run",
]
