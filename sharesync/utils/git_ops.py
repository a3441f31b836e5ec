"""Git operations — clone, stage, commit, push and inspect working copies."""

from __future__ import annotations

import logging
from pathlib import Path

from git import GitCommandError, Repo

from sharesync.errors import CloneFailed, CommandFailed, CommitFailed, PushFailed
from sharesync.logger import mask_secret

logger = logging.getLogger(__name__)

# Object name of the empty tree, present in every repository.
EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


def build_clone_url(host: str, org: str, target: str, token: str) -> str:
    """Return the token-authenticated HTTPS URL for ``org/target`` on ``host``."""
    return f"https://x-access-token:{token}@{host}/{org}/{target}.git"


def clone_repo(url: str, dest: Path, secret: str | None = None) -> Path:
    """Clone ``url`` into ``dest`` and return ``dest``.

    Args:
        url: Clone URL, possibly carrying credentials.
        dest: Directory to clone into. Must not exist or be empty.
        secret: Token to mask in log lines and error messages.

    Raises:
        CloneFailed: If git reports an error.
    """
    logger.info("Cloning %s into %s", mask_secret(url, secret), dest)
    try:
        repo = Repo.clone_from(url, dest)
    except GitCommandError as e:
        raise CloneFailed(
            f"Failed to clone {mask_secret(url, secret)}: {mask_secret(str(e), secret)}"
        ) from e
    repo.close()
    return dest


def set_identity(repo_path: Path, name: str, email: str) -> None:
    """Set the committer identity in the working copy's local git config."""
    with Repo(repo_path) as repo:
        try:
            repo.git.config("user.name", name)
            repo.git.config("user.email", email)
        except GitCommandError as e:
            raise CommitFailed(f"Failed to configure git identity: {e}") from e


def stage_all(repo_path: Path) -> None:
    """Stage every change in the working copy (``git add -A``)."""
    with Repo(repo_path) as repo:
        try:
            repo.git.add(A=True)
        except GitCommandError as e:
            raise CommitFailed(f"Failed to stage changes: {e}") from e


def diff_name_status(repo_path: Path) -> str:
    """Return ``git diff --name-status`` output against the last commit.

    A repository without commits is compared with the empty tree, so every
    staged file shows up as added.
    """
    with Repo(repo_path) as repo:
        base = "HEAD" if repo.head.is_valid() else EMPTY_TREE_SHA
        try:
            return repo.git.diff(base, name_status=True)
        except GitCommandError as e:
            raise CommandFailed("git", ["diff", "--name-status", base], e.status, str(e.stderr)) from e


def commit(repo_path: Path, message: str) -> str:
    """Commit the staged changes and return the new commit SHA."""
    with Repo(repo_path) as repo:
        try:
            repo.git.commit(m=message)
        except GitCommandError as e:
            raise CommitFailed(f"Failed to commit: {e}") from e
        return repo.head.commit.hexsha


def push(repo_path: Path, remote: str = "origin", secret: str | None = None) -> None:
    """Push the current branch to ``remote``."""
    with Repo(repo_path) as repo:
        try:
            repo.git.push(remote, "HEAD")
        except GitCommandError as e:
            raise PushFailed(f"Failed to push: {mask_secret(str(e), secret)}") from e
