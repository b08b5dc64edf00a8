from __future__ import annotations

import subprocess
from pathlib import Path


def run(cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)


def checkout_branch(repo_dir: Path, branch: str) -> None:
    """Point HEAD at ``branch`` without needing any commits."""
    run(["git", "symbolic-ref", "HEAD", f"refs/heads/{branch}"], cwd=repo_dir)
