"""Tests for the sync transaction (clone, snapshot, apply, commit, rollback)."""

import json
import shutil
import sys

import pytest
from git import Repo

from conftest import read_tree, write_files
from sharesync.config import SyncConfig
from sharesync.errors import (
    BackupFailed,
    CloneFailed,
    ConfigError,
    InstallFailed,
    ManifestParseError,
    PushFailed,
    RollbackFailed,
    SyncFailed,
)
from sharesync.sync import snapshot as snapshot_module
from sharesync.sync import transaction as transaction_module
from sharesync.sync.changes import ChangeDescriptor, ChangeKind
from sharesync.sync.snapshot import find_orphaned_snapshots
from sharesync.sync.transaction import (
    COMMIT_SUBJECT,
    SyncStatus,
    SyncTransaction,
    TransactionState,
    compose_commit_message,
    run_sync,
)
from sharesync.utils import git_ops

FAIL_COMMAND = [sys.executable, "-c", "import sys; sys.exit(3)"]
OK_COMMAND = [sys.executable, "-c", "pass"]


def make_config(tmp_path, source_dir, remote, **kwargs) -> SyncConfig:
    return SyncConfig(
        source_dir=source_dir,
        target="target",
        workspace=tmp_path / "workspace",
        repo_url=str(remote),
        **kwargs,
    )


# --- Commit message ---


def test_commit_message_has_one_line_per_change_in_order():
    changes = [
        ChangeDescriptor.parse("M\tshared/b.txt"),
        ChangeDescriptor.parse("A\tshared/a.txt"),
        ChangeDescriptor.parse("D\tshared/c.txt"),
    ]
    message = compose_commit_message(changes)
    lines = message.splitlines()
    assert lines[0] == COMMIT_SUBJECT
    assert lines[1] == ""
    assert lines[2:] == ["M\tshared/b.txt", "A\tshared/a.txt", "D\tshared/c.txt"]


# --- Successful runs ---


def test_full_subtree_replacement_is_committed_and_pushed(tmp_path, source_dir, make_remote):
    remote = make_remote({
        "shared/config.json": "B",
        "shared/extra.txt": "only in target",
        "README.md": "# target",
    })
    write_files(source_dir, {"shared/config.json": "A"})

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.COMMITTED, result.error
    assert result.state == TransactionState.DONE
    wc = config.working_copy
    assert (wc / "shared" / "config.json").read_text() == "A"
    assert not (wc / "shared" / "extra.txt").exists()
    assert (wc / "README.md").read_text() == "# target"

    kinds = {c.path: c.kind for c in result.changes}
    assert kinds["shared/config.json"] == ChangeKind.MODIFIED
    assert kinds["shared/extra.txt"] == ChangeKind.DELETED

    body = result.commit_message.splitlines()[2:]
    assert body == [c.raw for c in result.changes]

    pushed = Repo(remote).head.commit
    assert pushed.hexsha == result.commit_sha
    assert pushed.message.strip() == result.commit_message.strip()


def test_run_log_lists_every_change(tmp_path, source_dir, make_remote):
    remote = make_remote({"shared/a.txt": "old"})
    write_files(source_dir, {"shared/a.txt": "new", "shared/b.txt": "added"})

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.COMMITTED, result.error
    assert result.log_path is not None
    assert result.log_path.parent == config.log_dir
    assert result.log_path.name.startswith("sync-target-")
    text = result.log_path.read_text()
    assert "Target: target" in text
    assert f"Source: {source_dir}" in text
    for change in result.changes:
        assert change.raw in text
    assert "Elapsed:" in text


def test_missing_scripts_are_added_and_committed(tmp_path, source_dir, make_remote):
    remote = make_remote({
        "package.json": json.dumps({"name": "target", "scripts": {"lint": "custom"}}),
    })
    write_files(source_dir, {"shared/a.txt": "x"})

    config = make_config(tmp_path, source_dir, remote, required_scripts={"lint": "eslint .", "test": "jest"})
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.COMMITTED, result.error
    assert result.added_scripts == ["test"]
    manifest = json.loads((config.working_copy / "package.json").read_text())
    assert manifest["scripts"] == {"lint": "custom", "test": "jest"}


def test_no_changes_skips_commit_push_and_log(tmp_path, source_dir, make_remote):
    remote = make_remote({"shared/a.txt": "same"})
    write_files(source_dir, {"shared/a.txt": "same"})
    before = Repo(remote).head.commit.hexsha

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.NO_CHANGES
    assert result.succeeded
    assert result.changes == []
    assert result.commit_message == ""
    assert result.log_path is None
    assert not config.log_dir.exists()
    assert Repo(remote).head.commit.hexsha == before


def test_missing_source_subtree_leaves_target_untouched(tmp_path, source_dir, make_remote):
    files = {"shared/a.txt": "keep me", "shared/nested/b.bin": "\x00\x01"}
    remote = make_remote(files)

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.NO_CHANGES
    assert result.error is None
    assert result.synced_subtrees == []
    assert read_tree(config.working_copy) == read_tree(tmp_path / "target-seed")


def test_install_runs_when_lockfile_present(tmp_path, source_dir, make_remote):
    remote = make_remote({"yarn.lock": "", "shared/a.txt": "old"})
    write_files(source_dir, {"shared/a.txt": "new"})
    marker = tmp_path / "installed"
    command = [sys.executable, "-c", f"open({str(marker)!r}, 'w').close()"]

    config = make_config(tmp_path, source_dir, remote, install_command=command)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.COMMITTED, result.error
    assert marker.exists()


def test_snapshot_kept_by_default(tmp_path, source_dir, make_remote):
    remote = make_remote({"shared/a.txt": "old"})
    write_files(source_dir, {"shared/a.txt": "new"})

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.succeeded
    assert result.snapshot_path.is_dir()
    assert find_orphaned_snapshots(config.working_copy) == [result.snapshot_path]


def test_snapshot_removed_when_cleanup_enabled(tmp_path, source_dir, make_remote):
    remote = make_remote({"shared/a.txt": "old"})
    write_files(source_dir, {"shared/a.txt": "new"})

    config = make_config(tmp_path, source_dir, remote, cleanup_snapshot=True)
    result = SyncTransaction(config).run()

    assert result.succeeded
    assert not result.snapshot_path.exists()


def test_stale_working_copy_is_replaced(tmp_path, source_dir, make_remote):
    remote = make_remote({"shared/a.txt": "old"})
    config = make_config(tmp_path, source_dir, remote)
    write_files(config.working_copy, {"leftover.txt": "from a previous run"})

    result = SyncTransaction(config).run()

    assert result.succeeded, result.error
    assert not (config.working_copy / "leftover.txt").exists()
    assert (config.working_copy / "shared" / "a.txt").read_text() == "old"


def test_first_sync_into_repository_without_commits(tmp_path, source_dir):
    remote = tmp_path / "empty.git"
    Repo.init(remote, bare=True)
    write_files(source_dir, {"shared/a.txt": "a", "shared/nested/b.txt": "b"})

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.COMMITTED, result.error
    assert result.preview == []
    assert {c.path for c in result.changes} == {"shared/a.txt", "shared/nested/b.txt"}
    assert all(c.kind == ChangeKind.ADDED for c in result.changes)
    assert result.commit_sha in [head.commit.hexsha for head in Repo(remote).heads]


def test_commit_subject_skips_ci():
    assert compose_commit_message([]).splitlines()[0] == "chore: sync shared configurations [skip ci]"


# --- Failures and rollback ---


def test_install_failure_restores_pre_sync_working_copy(tmp_path, source_dir, make_remote):
    files = {"yarn.lock": "", "shared/a.txt": "original", "shared/extra.txt": "extra"}
    remote = make_remote(files)
    write_files(source_dir, {"shared/a.txt": "replacement"})

    config = make_config(tmp_path, source_dir, remote, install_command=FAIL_COMMAND)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.FAILED
    assert result.state == TransactionState.FAILED
    assert isinstance(result.error, InstallFailed)
    assert result.rolled_back
    assert result.rollback_error is None
    assert read_tree(config.working_copy) == read_tree(tmp_path / "target-seed")
    assert Repo(config.working_copy).head.commit.hexsha == Repo(remote).head.commit.hexsha
    assert not result.snapshot_path.exists()


def test_push_failure_rolls_back(tmp_path, source_dir, make_remote, monkeypatch):
    remote = make_remote({"shared/a.txt": "original"})
    write_files(source_dir, {"shared/a.txt": "replacement"})
    before = Repo(remote).head.commit.hexsha

    def failing_push(*args, **kwargs):
        raise PushFailed("remote rejected")

    monkeypatch.setattr(git_ops, "push", failing_push)

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert isinstance(result.error, PushFailed)
    assert result.rolled_back
    assert (config.working_copy / "shared" / "a.txt").read_text() == "original"
    assert Repo(config.working_copy).head.commit.hexsha == before
    assert result.log_path is None


def test_rollback_failure_is_reported_with_original_error(tmp_path, source_dir, make_remote, monkeypatch):
    remote = make_remote({"yarn.lock": "", "shared/a.txt": "original"})
    write_files(source_dir, {"shared/a.txt": "replacement"})

    def failing_restore(original, snapshot):
        raise RollbackFailed("disk full")

    monkeypatch.setattr(snapshot_module, "restore_snapshot", failing_restore)

    config = make_config(tmp_path, source_dir, remote, install_command=FAIL_COMMAND)
    result = SyncTransaction(config).run()

    assert isinstance(result.error, InstallFailed)
    assert isinstance(result.rollback_error, RollbackFailed)
    assert not result.rolled_back
    summary = result.summary()
    assert "Dependency install failed" in summary
    assert "rollback also failed" in summary


def test_clone_failure_takes_no_snapshot(tmp_path, source_dir):
    config = make_config(tmp_path, source_dir, tmp_path / "missing.git")
    result = SyncTransaction(config).run()

    assert isinstance(result.error, CloneFailed)
    assert result.snapshot_path is None
    assert not result.rolled_back
    assert result.elapsed_seconds >= 0


def test_clone_failure_masks_token(tmp_path, source_dir):
    config = SyncConfig(
        source_dir=source_dir,
        target="target",
        token="s3cr3t-token",
        host="127.0.0.1:9",
        workspace=tmp_path / "workspace",
    )
    result = SyncTransaction(config).run()

    assert isinstance(result.error, CloneFailed)
    assert "s3cr3t-token" not in str(result.error)


def test_run_sync_validates_config(tmp_path, source_dir):
    config = SyncConfig(source_dir=source_dir, target="target", workspace=tmp_path)
    with pytest.raises(ConfigError):
        run_sync(config)


def test_snapshot_failure_fails_without_rollback(tmp_path, source_dir, make_remote, monkeypatch):
    remote = make_remote({"shared/a.txt": "original"})
    write_files(source_dir, {"shared/a.txt": "replacement"})

    def failing_snapshot(path):
        raise BackupFailed("no space left on device")

    monkeypatch.setattr(snapshot_module, "create_snapshot", failing_snapshot)

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert result.status == SyncStatus.FAILED
    assert isinstance(result.error, BackupFailed)
    assert result.snapshot_path is None
    assert not result.rolled_back
    assert result.rollback_error is None
    assert read_tree(config.working_copy) == read_tree(tmp_path / "target-seed")


def test_subtree_sync_failure_restores_working_copy(tmp_path, source_dir, make_remote, monkeypatch):
    remote = make_remote({"shared/a.txt": "original", "shared/b.txt": "other"})
    write_files(source_dir, {"shared/a.txt": "replacement"})

    def half_done_sync(source, working_copy, subtrees):
        shutil.rmtree(working_copy / "shared")
        raise SyncFailed("copy interrupted")

    monkeypatch.setattr(transaction_module, "sync_subtrees", half_done_sync)

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert isinstance(result.error, SyncFailed)
    assert result.rolled_back
    assert result.state == TransactionState.FAILED
    assert read_tree(config.working_copy) == read_tree(tmp_path / "target-seed")


def test_invalid_manifest_restores_working_copy(tmp_path, source_dir, make_remote):
    remote = make_remote({"package.json": "{not json", "shared/a.txt": "old"})
    write_files(source_dir, {"shared/a.txt": "new"})
    before = Repo(remote).head.commit.hexsha

    config = make_config(tmp_path, source_dir, remote)
    result = SyncTransaction(config).run()

    assert isinstance(result.error, ManifestParseError)
    assert result.rolled_back
    assert read_tree(config.working_copy) == read_tree(tmp_path / "target-seed")
    assert Repo(remote).head.commit.hexsha == before
