"""Current-branch resolution.

Provides:
- Repository / find_repository(): locate the enclosing git repository
- BranchSource protocol and GitBranchSource: read the checked-out branch
- BranchContext: outcome of one resolution (branch name or failure)
- BranchResolver: override value first, git metadata second, optional cache

Resolution failures never leave BranchResolver.resolve(): they are returned
as a BranchContext without a name so callers can fail open.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from branchgate.exceptions import (
    BranchGateError,
    BranchReadError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 5
_HEAD_REF_PREFIX = "ref: refs/heads/"
_GITDIR_PREFIX = "gitdir: "


@dataclass(frozen=True)
class Repository:
    """A git working tree and the directory holding its metadata."""

    root: Path
    git_dir: Path

    def current_branch_name(self) -> str:
        """Return the name of the checked-out branch.

        Uses ``git symbolic-ref``, which also works on a branch with no
        commits yet. Falls back to reading ``HEAD`` directly when the git
        executable is not installed.

        Raises:
            BranchReadError: On detached HEAD, git failure or timeout.
        """
        try:
            result = subprocess.run(
                ["git", "symbolic-ref", "--short", "-q", "HEAD"],
                cwd=str(self.root),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except FileNotFoundError:
            logger.debug("git executable not found; reading %s/HEAD", self.git_dir)
            return self._read_head_file()
        except subprocess.TimeoutExpired as exc:
            raise BranchReadError(self.root, "git symbolic-ref timed out") from exc

        if result.returncode == 0:
            branch = result.stdout.strip()
            if branch:
                return branch
            raise BranchReadError(self.root, "git returned an empty branch name")
        if result.returncode == 1:
            raise BranchReadError(self.root, "HEAD is detached")

        detail = _first_line(result.stderr) or f"git exited with status {result.returncode}"
        raise BranchReadError(self.root, detail)

    def _read_head_file(self) -> str:
        head_path = self.git_dir / "HEAD"
        try:
            content = head_path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise BranchReadError(self.root, f"cannot read {head_path}: {exc}") from exc

        if not content.startswith(_HEAD_REF_PREFIX):
            raise BranchReadError(self.root, "HEAD is detached")
        branch = content[len(_HEAD_REF_PREFIX):].strip()
        if not branch:
            raise BranchReadError(self.root, f"malformed {head_path}")
        return branch


def _first_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


def _git_dir_for(candidate: Path) -> Path | None:
    """Return the metadata directory behind ``candidate/.git``, if any.

    Raises:
        BranchReadError: If a ``.git`` file exists but cannot be read.
    """
    dot_git = candidate / ".git"
    if dot_git.is_dir():
        return dot_git
    if dot_git.is_file():
        # Worktrees and submodules: "gitdir: /path/to/repo/.git/worktrees/name"
        try:
            content = dot_git.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise BranchReadError(candidate, f"cannot read {dot_git}: {exc}") from exc
        if content.startswith(_GITDIR_PREFIX):
            git_dir = Path(content[len(_GITDIR_PREFIX):].strip())
            if not git_dir.is_absolute():
                git_dir = candidate / git_dir
            return git_dir
    return None


def find_repository(start_dir: Path) -> Repository:
    """Locate the git repository enclosing ``start_dir``.

    Raises:
        RepositoryNotFoundError: If neither ``start_dir`` nor any parent
            holds git metadata.
        BranchReadError: If a ``.git`` file is unreadable or not UTF-8.
    """
    start = start_dir.resolve()
    for candidate in (start, *start.parents):
        git_dir = _git_dir_for(candidate)
        if git_dir is not None:
            logger.debug("found git metadata for %s at %s", candidate, git_dir)
            return Repository(root=candidate, git_dir=git_dir)
    raise RepositoryNotFoundError(start)


class BranchSource(Protocol):
    """Anything that can report the checked-out branch.

    Implementations raise a BranchGateError subclass on failure.
    """

    def current_branch(self) -> str: ...


class GitBranchSource:
    """BranchSource backed by the git repository enclosing ``start_dir``."""

    def __init__(self, start_dir: Path | None = None) -> None:
        self.start_dir = start_dir if start_dir is not None else Path.cwd()

    def current_branch(self) -> str:
        return find_repository(self.start_dir).current_branch_name()


@dataclass(frozen=True)
class BranchContext:
    """Outcome of resolving the current branch."""

    name: str | None
    source: str
    error: Exception | None = None

    @property
    def resolved(self) -> bool:
        return self.name is not None

    @property
    def failure_kind(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None


class BranchResolver:
    """Resolve the current branch name.

    An explicit override wins and skips git entirely; it exists for build
    agents that receive sources without ``.git`` metadata. Otherwise the
    branch source is consulted. With ``cache=True`` the first successful
    resolution is kept for the lifetime of the resolver; failures are
    retried on the next call.
    """

    def __init__(
        self,
        override: str | None = None,
        source: BranchSource | None = None,
        cache: bool = True,
    ) -> None:
        self.override = override.strip() if override and override.strip() else None
        self.source: BranchSource = source if source is not None else GitBranchSource()
        self.cache = cache
        self._cached: BranchContext | None = None

    def resolve(self) -> BranchContext:
        if self.override is not None:
            logger.info("read branch name='%s' from override setting", self.override)
            return BranchContext(name=self.override, source="override")

        if self._cached is not None:
            logger.debug("using cached branch name='%s'", self._cached.name)
            return self._cached

        try:
            branch = self.source.current_branch()
        except BranchGateError as exc:
            logger.error("unable to read current branch: %s", exc)
            return BranchContext(name=None, source="git", error=exc)
        except Exception as exc:
            logger.error("unexpected error reading current branch: %s", exc, exc_info=True)
            return BranchContext(name=None, source="git", error=exc)

        logger.info("currently checked out branch='%s'", branch)
        context = BranchContext(name=branch, source="git")
        if self.cache:
            self._cached = context
        return context

    def clear_cache(self) -> None:
        self._cached = None
