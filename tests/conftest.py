from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from branchgate.config import ENV_VARS
from tests.utils import checkout_branch, run

pytest_plugins = ["pytester"]


@pytest.fixture(autouse=True)
def clean_branchgate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's BRANCHGATE_* variables out of every test."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def temp_repo(tmp_path: Path) -> Iterator[Path]:
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    run(["git", "init"], cwd=repo_dir)
    run(["git", "config", "user.name", "Branch Gate"], cwd=repo_dir)
    run(["git", "config", "user.email", "branchgate@example.com"], cwd=repo_dir)
    checkout_branch(repo_dir, "feature-x")
    yield repo_dir


@pytest.fixture()
def committed_repo(temp_repo: Path) -> Path:
    (temp_repo / "README.md").write_text("demo\n", encoding="utf-8")
    run(["git", "add", "."], cwd=temp_repo)
    run(["git", "commit", "--no-gpg-sign", "-m", "Initial commit"], cwd=temp_repo)
    return temp_repo
