"""Shared fixtures: throwaway git repositories with a local bare remote."""

from pathlib import Path

import pytest
from git import Repo


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def read_tree(root: Path) -> dict[str, bytes]:
    """Every file under ``root`` (outside .git) mapped to its bytes."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and ".git" not in p.relative_to(root).parts
    }


def init_repo(path: Path, files: dict[str, str]) -> Repo:
    """Create a repo at ``path`` with ``files`` in a single commit."""
    path.mkdir(parents=True, exist_ok=True)
    repo = Repo.init(path)
    repo.git.config("user.name", "Test")
    repo.git.config("user.email", "test@example.com")
    write_files(path, files)
    repo.git.add(A=True)
    repo.git.commit(m="initial")
    return repo


@pytest.fixture
def make_remote(tmp_path):
    """Factory: bare repository seeded with ``files``; returns its path."""

    def _make(files: dict[str, str], name: str = "target") -> Path:
        seed = tmp_path / f"{name}-seed"
        init_repo(seed, files)
        bare = tmp_path / f"{name}.git"
        Repo.clone_from(str(seed), str(bare), bare=True)
        return bare

    return _make


@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "source"
    path.mkdir()
    return path
