"""Tests for the GitHub sync controller with git scripted."""

import shutil
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from task_cache.core.errors import (
    ConfigurationError,
    NetworkOrAuthError,
    SyncError,
    ToolUnavailableError,
)
from task_cache.core.git import GitFailureReason, GitResult, GitRunner
from task_cache.core.storage import LogStore
from task_cache.core.sync import SyncController, SyncState
from task_cache.models.config import CONFIG_FILENAME, SETTINGS_FILENAME, SyncConfig

TOKEN = "ghp_secret123"

PUSH_REJECTED = " ! [rejected]        main -> main (fetch first)\nhint: Updates were rejected"
PULL_DIVERGENT = "fatal: Need to specify how to reconcile divergent branches."
MERGE_CONFLICT = (
    "CONFLICT (content): Merge conflict in 2025-05-20.md\n"
    "Automatic merge failed; fix conflicts and then commit the result."
)


class FakeGit(GitRunner):
    """GitRunner that answers from a script instead of running git."""

    def __init__(self, repo_dir: Path) -> None:
        super().__init__(repo_dir)
        self.calls: list[tuple[str, ...]] = []
        self.scripted: list[tuple[tuple[str, ...], GitResult]] = []
        self.available = True
        self.repo = True

    def script(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Queue one result for the next call starting with prefix."""
        self.scripted.append((prefix, GitResult(prefix, returncode, stdout, stderr)))

    def run(self, *args: str) -> GitResult:
        self.calls.append(args)
        for index, (prefix, result) in enumerate(self.scripted):
            if args[: len(prefix)] == prefix:
                del self.scripted[index]
                return GitResult(args, result.returncode, result.stdout, result.stderr)
        return self._default(args)

    def _default(self, args: tuple[str, ...]) -> GitResult:
        if args == ("--version",):
            if self.available:
                return GitResult(args, 0, "git version 2.43.0")
            return GitResult(args, 127, stderr="git executable not found")
        if args[:2] == ("diff", "--cached"):
            return GitResult(args, 1)
        if args[:2] == ("status", "--porcelain"):
            return GitResult(args, 0, " M 2025-05-20.md\n")
        if args[:2] == ("rev-list", "--count"):
            return GitResult(args, 0, "3\n")
        if args[0] == "ls-remote":
            return GitResult(args, 0, "abc123\trefs/heads/main\n")
        return GitResult(args, 0)

    def is_repo(self) -> bool:
        return self.repo

    def commands(self, name: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def git(tmp_path: Path) -> FakeGit:
    return FakeGit(tmp_path)


@pytest.fixture
def controller(tmp_path: Path, git: FakeGit) -> SyncController:
    config = SyncConfig(enabled=True, repository_id="me/logs", token=TOKEN)
    LogStore(tmp_path).write(date(2025, 5, 20), "# Task Cache\n")
    return SyncController(config, tmp_path, git=git)


class TestGuard:
    """Tests for refusing to sync without configuration."""

    def test_unconfigured_push_and_pull(self, tmp_path: Path, git: FakeGit) -> None:
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        assert controller.state == SyncState.UNCONFIGURED
        with pytest.raises(ConfigurationError, match="not configured"):
            controller.push()
        with pytest.raises(ConfigurationError):
            controller.pull()
        assert git.calls == []

    def test_configured_controller_starts_ready(self, controller: SyncController) -> None:
        assert controller.state == SyncState.READY
        assert controller.is_enabled()


class TestPush:
    """Tests for SyncController.push."""

    def test_nothing_staged_skips_commit_and_push(self, controller: SyncController, git: FakeGit) -> None:
        git.script("diff", "--cached", "--quiet", returncode=0)

        result = controller.push()

        assert result.success
        assert result.skipped
        assert result.message == "No changes to commit."
        assert git.commands("commit") == []
        assert git.commands("push") == []
        assert controller.config.last_sync is None

    def test_commit_with_only_untracked_files_is_skipped(self, controller: SyncController, git: FakeGit) -> None:
        git.script(
            "commit",
            returncode=1,
            stdout="Untracked files:\n\tREADME.md\nnothing added to commit but untracked files present",
        )

        result = controller.push()

        assert result.success
        assert result.skipped
        assert git.commands("push") == []
        assert controller.config.last_sync is None

    def test_push_commits_documents(self, controller: SyncController, git: FakeGit, tmp_path: Path) -> None:
        result = controller.push()

        assert result.success
        assert result.changed
        assert ("add", "--", "2025-05-20.md") in git.calls
        (commit,) = git.commands("commit")
        assert commit[2].startswith("Update task cache: ")
        assert git.commands("push") == [
            ("push", f"https://{TOKEN}@github.com/me/logs.git", "main"),
        ]
        assert controller.config.last_sync is not None
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert controller.state == SyncState.READY

    def test_sets_identity_when_missing(self, controller: SyncController, git: FakeGit) -> None:
        git.script("config", "user.email", returncode=1)

        controller.push()

        assert ("config", "user.email", SyncController.IDENTITY_EMAIL) in git.calls
        assert ("config", "user.name", SyncController.IDENTITY_NAME) in git.calls

    def test_rejected_push_pulls_then_retries_once(self, controller: SyncController, git: FakeGit) -> None:
        git.script("push", returncode=1, stderr=PUSH_REJECTED)

        result = controller.push()

        assert result.success
        remote = [call[0] for call in git.calls if call[0] in ("push", "pull")]
        assert remote == ["push", "pull", "push"]
        assert controller.config.last_sync is not None

    def test_second_rejection_raises(self, controller: SyncController, git: FakeGit) -> None:
        git.script("push", returncode=1, stderr=PUSH_REJECTED)
        git.script("push", returncode=1, stderr=PUSH_REJECTED)

        with pytest.raises(SyncError, match="after pulling"):
            controller.push()

        assert len(git.commands("push")) == 2
        assert len(git.commands("pull")) == 1
        assert controller.config.last_sync is None
        assert controller.state == SyncState.READY

    def test_conflict_during_recovery(self, controller: SyncController, git: FakeGit, tmp_path: Path) -> None:
        git.script("push", returncode=1, stderr=PUSH_REJECTED)
        git.script("pull", returncode=1, stdout=MERGE_CONFLICT)

        result = controller.push()

        assert not result.success
        assert result.conflict is not None
        assert result.conflict.reason == GitFailureReason.MERGE_CONFLICT
        assert result.conflict.remediation[0] == f"cd {tmp_path}"
        assert result.conflict.remediation[-1] == "git push origin main"
        assert len(git.commands("push")) == 1
        assert controller.state == SyncState.CONFLICT
        assert controller.config.last_sync is None

    def test_auth_failure_is_not_retried(self, controller: SyncController, git: FakeGit) -> None:
        git.script("push", returncode=128, stderr="fatal: Authentication failed for 'https://github.com/'")

        with pytest.raises(NetworkOrAuthError):
            controller.push()

        assert len(git.commands("push")) == 1
        assert git.commands("pull") == []
        assert controller.config.last_sync is None

    def test_error_messages_hide_token(self, controller: SyncController, git: FakeGit) -> None:
        git.script(
            "push",
            returncode=128,
            stderr=f"fatal: unable to access 'https://{TOKEN}@github.com/me/logs.git/'",
        )

        with pytest.raises(NetworkOrAuthError) as exc_info:
            controller.push()

        assert TOKEN not in str(exc_info.value)


class TestPull:
    """Tests for SyncController.pull."""

    def test_fast_forward(self, controller: SyncController, git: FakeGit) -> None:
        result = controller.pull()

        assert result.success
        assert result.changed
        assert git.commands("pull") == [("pull", "origin", "main")]
        assert controller.config.last_sync is not None

    def test_missing_remote_branch_is_skipped(self, controller: SyncController, git: FakeGit) -> None:
        git.script("ls-remote", returncode=2)

        result = controller.pull()

        assert result.success
        assert result.skipped
        assert "not found" in result.message
        assert git.commands("pull") == []
        assert controller.config.last_sync is None

    def test_empty_history_falls_back_to_checkout(self, controller: SyncController, git: FakeGit) -> None:
        git.script("rev-list", returncode=128, stderr="fatal: ambiguous argument 'HEAD'")
        git.script("pull", returncode=1, stderr="fatal: refusing to overwrite untracked files")

        result = controller.pull()

        assert result.success
        assert ("fetch", "origin", "main") in git.calls
        assert ("checkout", "-b", "main", "origin/main") in git.calls

    def test_divergent_pull_merges(self, controller: SyncController, git: FakeGit) -> None:
        git.script("pull", returncode=128, stderr=PULL_DIVERGENT)

        result = controller.pull()

        assert result.success
        assert ("fetch", "origin", "main") in git.calls
        assert git.commands("merge") == [
            ("merge", "origin/main", "--allow-unrelated-histories", "-m", "Merge remote changes"),
        ]
        assert controller.state == SyncState.READY

    def test_failed_merge_enters_conflict(self, controller: SyncController, git: FakeGit) -> None:
        git.script("pull", returncode=128, stderr=PULL_DIVERGENT)
        git.script("merge", returncode=1, stdout=MERGE_CONFLICT)

        result = controller.pull()

        assert not result.success
        assert result.conflict is not None
        assert controller.state == SyncState.CONFLICT
        assert controller.config.last_sync is None

        with pytest.raises(SyncError, match="manual resolution"):
            controller.push()
        with pytest.raises(SyncError):
            controller.pull()

    def test_network_failure_raises(self, controller: SyncController, git: FakeGit) -> None:
        git.script("pull", returncode=128, stderr="fatal: unable to access: Could not resolve host: github.com")

        with pytest.raises(NetworkOrAuthError):
            controller.pull()

        assert controller.state == SyncState.READY


class TestSetup:
    """Tests for SyncController.setup."""

    def test_missing_token(self, tmp_path: Path, git: FakeGit) -> None:
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        with pytest.raises(ConfigurationError, match="Missing repository or token"):
            controller.setup("me/logs", "")

        assert controller.config.enabled is False
        assert controller.state == SyncState.UNCONFIGURED
        assert SyncConfig.load(tmp_path / CONFIG_FILENAME).enabled is False

    def test_invalid_repository(self, tmp_path: Path, git: FakeGit) -> None:
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        with pytest.raises(ConfigurationError, match="owner/name"):
            controller.setup("not-a-repo", TOKEN)

        assert controller.state == SyncState.UNCONFIGURED

    def test_git_unavailable(self, tmp_path: Path, git: FakeGit) -> None:
        git.available = False
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        with pytest.raises(ToolUnavailableError):
            controller.setup("me/logs", TOKEN)

        assert controller.config.enabled is False

    def test_success(self, tmp_path: Path, git: FakeGit) -> None:
        git.repo = False
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        controller.setup(" me/logs ", TOKEN, branch="journal", auto_sync=True)

        assert controller.state == SyncState.READY
        assert controller.config.enabled is True
        assert controller.config.repository_id == "me/logs"
        assert controller.config.branch == "journal"
        assert controller.config.auto_sync is True
        assert ("init",) in git.calls
        assert ("remote", "add", "origin", f"https://{TOKEN}@github.com/me/logs.git") in git.calls
        ignored = (tmp_path / ".gitignore").read_text().splitlines()
        assert CONFIG_FILENAME in ignored
        assert SETTINGS_FILENAME in ignored
        assert SyncConfig.load(tmp_path / CONFIG_FILENAME).is_configured

    def test_gitignore_keeps_existing_entries(self, tmp_path: Path, git: FakeGit) -> None:
        (tmp_path / ".gitignore").write_text("*.tmp")
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        controller.setup("me/logs", TOKEN)
        controller.init_repo()

        assert (tmp_path / ".gitignore").read_text() == f"*.tmp\n{CONFIG_FILENAME}\n{SETTINGS_FILENAME}\n"


class TestReporting:
    """Tests for create_repo, status and debug_info."""

    def test_create_repo_requires_configuration(self, tmp_path: Path, git: FakeGit) -> None:
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        with pytest.raises(ConfigurationError, match="not configured"):
            controller.create_repo()

    def test_create_repo_uses_client(self, tmp_path: Path, git: FakeGit) -> None:
        client = MagicMock()
        client.ensure_repository.return_value = True
        config = SyncConfig(enabled=True, repository_id="me/logs", token=TOKEN)
        controller = SyncController(config, tmp_path, git=git, client=client)

        assert controller.create_repo() is True
        client.ensure_repository.assert_called_once_with("me/logs")

    def test_status_disabled(self, tmp_path: Path, git: FakeGit) -> None:
        controller = SyncController(SyncConfig(), tmp_path, git=git)

        assert controller.status() == {"enabled": False, "message": "GitHub sync is not enabled."}

    def test_status_configured(self, controller: SyncController) -> None:
        status = controller.status()

        assert status["enabled"] is True
        assert status["repository"] == "me/logs"
        assert status["last_sync"] == "Never"
        assert status["state"] == "ready"
        assert TOKEN not in str(status)

    def test_debug_info_never_includes_token(self, controller: SyncController, git: FakeGit) -> None:
        git.script("remote", "get-url", stdout=f"https://{TOKEN}@github.com/me/logs.git\n")
        git.script("branch", "--show-current", stdout="main\n")

        info = controller.debug_info()

        assert info["token"] == f"{len(TOKEN)} characters"
        assert info["remote_url"] == "https://***@github.com/me/logs.git"
        assert info["current_branch"] == "main"
        assert info["uncommitted_changes"] is True
        assert TOKEN not in str(info)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestPushWithRealGit:
    """Tests against a real git repository; nothing reaches the network."""

    def test_untracked_files_do_not_break_a_clean_push(self, tmp_path: Path) -> None:
        config = SyncConfig(enabled=True, repository_id="me/logs", token=TOKEN)
        controller = SyncController(config, tmp_path)
        controller.init_repo()
        LogStore(tmp_path).write(date(2025, 5, 20), "# Task Cache\n")
        controller.git.check("add", "--", "2025-05-20.md", ".gitignore")
        controller.git.check(
            "-c", "user.name=Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            "commit", "-m", "Initial log",
        )
        (tmp_path / SETTINGS_FILENAME).write_text("verbose: true\n")
        (tmp_path / "README.md").write_text("notes that are not a log\n")

        result = controller.push()

        assert result.success
        assert result.skipped
        assert result.message == "No changes to commit."
        assert controller.git.commit_count() == 1
        assert controller.config.last_sync is None
        assert controller.state == SyncState.READY
