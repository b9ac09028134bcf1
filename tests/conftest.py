"""Shared fixtures for parts tests."""

import shutil
import subprocess
from pathlib import Path
from typing import Dict

import pytest

GIT = shutil.which("git")

requires_git = pytest.mark.skipif(GIT is None, reason="git executable not available")


def write_files(root: Path, files: Dict[str, str]) -> None:
    """Create files under ``root`` from a path to text mapping."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def git(repo: Path, *args: str) -> str:
    """Run a git command in ``repo`` with a throwaway identity."""
    result = subprocess.run(
        [
            GIT,
            "-c", "user.name=Parts Tests",
            "-c", "user.email=tests@example.com",
            "-c", "commit.gpgsign=false",
            "-c", "init.defaultBranch=main",
            *args,
        ],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_all(repo: Path, message: str = "update") -> str:
    """Stage everything, commit, and return the new commit id."""
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def project(tmp_path):
    """An empty project root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def git_repo(project):
    """An initialised git repository without commits."""
    if GIT is None:
        pytest.skip("git executable not available")
    git(project, "init", "-q")
    return project
