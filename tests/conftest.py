from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from lorevault.git.cache import MirrorCache
from lorevault.sources.resolver import SourceResolver


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=lorevault", "-c", "user.email=lv@example.com", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def resolver(tmp_path):
    with MirrorCache(str(tmp_path / "mirrors")) as mirrors:
        yield SourceResolver(mirrors)


@pytest.fixture
def git_repo(tmp_path) -> Path:
    """
    A repository with two commits on ``main``:

    * ``v1`` tag: ``a.txt`` = "one", ``docs/x.md``, ``docs/sub/y.md``
    * tip: ``a.txt`` = "two"
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    (repo / "a.txt").write_text("one\n")
    (repo / "docs" / "sub").mkdir(parents=True)
    (repo / "docs" / "x.md").write_text("# x\n")
    (repo / "docs" / "sub" / "y.md").write_text("# y\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "first")
    _git(repo, "tag", "v1")
    (repo / "a.txt").write_text("two\n")
    _git(repo, "commit", "-q", "-am", "second")
    return repo
