"""Exception hierarchy for branch-gated test selection."""

from __future__ import annotations

from pathlib import Path


class BranchGateError(Exception):
    """Base exception for branchgate errors."""
    pass


class RepositoryNotFoundError(BranchGateError):
    """No git metadata is reachable from the starting directory."""

    def __init__(self, start_dir: Path):
        self.start_dir = start_dir
        super().__init__(f"No git repository found at or above {start_dir}")


class BranchReadError(BranchGateError):
    """Git metadata exists but the current branch name cannot be read.

    Covers detached HEAD, corrupt metadata, git failures and timeouts.
    """

    def __init__(self, repo_root: Path, reason: str):
        self.repo_root = repo_root
        self.reason = reason
        super().__init__(f"Unable to read current branch in {repo_root}: {reason}")


class BranchGateConfigError(BranchGateError):
    """Raised when branchgate configuration is invalid."""
