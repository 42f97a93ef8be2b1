"""GitHub synchronization of the task cache directory.

The controller drives git through push and pull against one remote branch.
Diverging history is recovered automatically exactly once: a rejected push
pulls and retries, a divergent pull merges with unrelated histories allowed.
When that merge fails the controller stops in the CONFLICT state and returns
a descriptor telling the operator how to finish by hand.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ..models.config import CONFIG_FILENAME, SETTINGS_FILENAME, SyncConfig
from .auth import GitHubAuth
from .client import GitHubClient
from .errors import ConfigurationError, SyncError, TaskCacheError, ToolUnavailableError
from .git import (
    DEFAULT_TIMEOUT,
    GitFailureReason,
    GitResult,
    GitRunner,
    TransientSyncConflict,
    error_for,
    mask_credentials,
)
from .storage import LogStore

logger = logging.getLogger(__name__)

REPOSITORY_ID_RE = re.compile(r"^[\w.-]+/[\w.-]+$")

# Local-only files kept out of the repository
IGNORED_FILES = (CONFIG_FILENAME, SETTINGS_FILENAME)


class SyncState(str, Enum):
    """Lifecycle of a sync controller."""

    UNCONFIGURED = "unconfigured"
    CONFIGURING = "configuring"
    READY = "ready"
    SYNCING = "syncing"
    CONFLICT = "conflict"  # waiting for manual resolution


@dataclass(frozen=True)
class ConflictDescriptor:
    """An automatic merge that failed and must be resolved by hand."""

    repo_dir: str
    branch: str
    reason: GitFailureReason
    detail: str

    @property
    def remediation(self) -> list[str]:
        """Commands the operator should run to finish the merge."""
        return [
            f"cd {self.repo_dir}",
            "git status",
            "# Resolve any conflicts, then:",
            "git add .",
            'git commit -m "Resolve merge conflicts"',
            f"git push origin {self.branch}",
        ]


@dataclass
class SyncResult:
    """Result of a sync operation."""

    success: bool
    operation: str  # "push" or "pull"
    message: str
    changed: bool = False
    skipped: bool = False
    conflict: ConflictDescriptor | None = None


class SyncController:
    """Pushes and pulls the log directory to and from a GitHub repository."""

    REMOTE = "origin"
    MERGE_MESSAGE = "Merge remote changes"
    IDENTITY_NAME = "Task Cache Sync"
    IDENTITY_EMAIL = "task-cache-sync@example.com"

    def __init__(
        self,
        config: SyncConfig,
        repo_dir: Path,
        config_path: Path | None = None,
        git: GitRunner | None = None,
        client: GitHubClient | None = None,
        api_base_url: str | None = None,
        git_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Sync configuration, saved back after every change
            repo_dir: Log directory that holds the git working tree
            config_path: Where the configuration is saved (defaults to repo_dir)
            git: GitRunner (created if not provided)
            client: GitHubClient (created lazily if not provided)
            api_base_url: GitHub API base URL for the lazily created client
            git_timeout: Timeout for each git invocation, in seconds
        """
        self.config = config
        self.repo_dir = Path(repo_dir)
        self.config_path = config_path or self.repo_dir / CONFIG_FILENAME
        self.git = git or GitRunner(self.repo_dir, timeout=git_timeout)
        self.store = LogStore(self.repo_dir)
        self._client = client
        self.api_base_url = api_base_url
        self._state = SyncState.READY if config.is_configured else SyncState.UNCONFIGURED

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def client(self) -> GitHubClient:
        """Get or create GitHubClient."""
        if self._client is None:
            try:
                auth = GitHubAuth(token=self.config.token, base_url=self.api_base_url)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            self._client = GitHubClient(auth)
        return self._client

    def is_enabled(self) -> bool:
        return self.config.is_configured

    def save_config(self) -> None:
        self.config.save(self.config_path)

    def _require_configured(self) -> None:
        if self._state == SyncState.CONFLICT:
            raise SyncError(
                "A previous merge needs manual resolution. Resolve and push it with "
                "git, then run tcache again."
            )
        if not self.config.is_configured:
            raise ConfigurationError(
                "GitHub sync is not configured. Run 'tcache github setup' first."
            )

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def setup(
        self,
        repository_id: str,
        token: str,
        branch: str | None = None,
        auto_sync: bool | None = None,
        sync_on_start: bool | None = None,
    ) -> None:
        """Store the sync settings and link the log directory to GitHub.

        Raises:
            ToolUnavailableError: If git is not installed
            ConfigurationError: If the repository or token is missing
        """
        self.repo_dir.mkdir(parents=True, exist_ok=True)
        if not self.git.is_available():
            raise ToolUnavailableError("Git is not installed. Please install Git to use GitHub sync.")

        self._state = SyncState.CONFIGURING
        config = self.config
        config.repository_id = (repository_id or "").strip()
        config.token = (token or "").strip()
        if branch and branch.strip():
            config.branch = branch.strip()
        if auto_sync is not None:
            config.auto_sync = auto_sync
        if sync_on_start is not None:
            config.sync_on_start = sync_on_start

        if not config.repository_id or not config.token:
            self._abort_setup()
            raise ConfigurationError("Missing repository or token. GitHub sync will not be enabled.")
        if not REPOSITORY_ID_RE.match(config.repository_id):
            self._abort_setup()
            raise ConfigurationError(
                f"Invalid repository '{config.repository_id}'. Use the format owner/name."
            )

        try:
            self.init_repo()
        except TaskCacheError:
            self._abort_setup()
            raise

        config.enabled = True
        self.save_config()
        self._state = SyncState.READY
        logger.info("GitHub sync configured for %s (%s)", config.repository_id, config.branch)

    def _abort_setup(self) -> None:
        self.config.enabled = False
        self.save_config()
        self._state = SyncState.UNCONFIGURED

    def init_repo(self) -> None:
        """Initialize the git repository and point origin at GitHub."""
        self.repo_dir.mkdir(parents=True, exist_ok=True)
        if not self.git.is_available():
            raise ToolUnavailableError("Git is not installed on your system")

        if not self.git.is_repo():
            logger.info("Initializing Git repository in %s", self.repo_dir)
            self.git.check("init")
        self._ensure_gitignore()

        # Preferences only; failures are not fatal
        for args in (("config", "pull.rebase", "false"), ("config", "init.defaultBranch", "main")):
            result = self.git.run(*args)
            if not result.ok:
                logger.debug("Ignoring failed %s: %s", result.command, result.detail)
        self._clear_credential_helpers()

        if self.config.repository_id and self.config.token:
            self.git.run("remote", "remove", self.REMOTE)
            self.git.check("remote", "add", self.REMOTE, self.config.remote_url())
            logger.info("Git remote configured with authentication token")

    def _ensure_gitignore(self) -> None:
        """Keep the configuration (it holds the token) and settings out of git."""
        path = self.repo_dir / ".gitignore"
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        present = set(existing.splitlines())
        missing = [name for name in IGNORED_FILES if name not in present]
        if not missing:
            return
        if existing and not existing.endswith("\n"):
            existing += "\n"
        path.write_text(existing + "".join(f"{name}\n" for name in missing), encoding="utf-8")

    def _clear_credential_helpers(self) -> None:
        # The token lives in the remote URL; cached helpers would override it
        self.git.run("config", "--unset-all", "credential.helper")

    def _prepare_repo(self) -> None:
        if not self.git.is_repo():
            self.init_repo()

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    def push(self) -> SyncResult:
        """Commit pending documents and push them to GitHub.

        A rejection caused by diverging history triggers one pull followed by
        one retry.

        Raises:
            ConfigurationError: If sync is not configured
            SyncError: If the retried push also fails
            NetworkOrAuthError: If the remote refuses the push otherwise
        """
        self._require_configured()
        self._state = SyncState.SYNCING
        try:
            return self._push()
        finally:
            if self._state == SyncState.SYNCING:
                self._state = SyncState.READY

    def _push(self) -> SyncResult:
        logger.info("Pushing task cache to GitHub...")
        self._prepare_repo()
        self._clear_credential_helpers()
        self._ensure_identity()
        self._checkout_branch()
        self._stage_documents()

        if not self.git.has_staged_changes():
            return SyncResult(True, "push", "No changes to commit.", skipped=True)

        timestamp = datetime.now(timezone.utc).isoformat()
        commit = self.git.run("commit", "-m", f"Update task cache: {timestamp}")
        if not commit.ok:
            if commit.reason == GitFailureReason.NOTHING_TO_COMMIT:
                return SyncResult(True, "push", "No changes to commit.", skipped=True)
            raise error_for(commit)

        try:
            self._push_branch()
        except TransientSyncConflict as e:
            logger.warning("Remote has changes (%s). Pulling first...", e.reason.value)
            pulled = self._pull_changes()
            if pulled.conflict is not None:
                return SyncResult(
                    False,
                    "push",
                    "Unable to sync with remote. Please resolve conflicts manually.",
                    conflict=pulled.conflict,
                )
            retry = self._run_push()
            if not retry.ok:
                raise SyncError(f"Unable to sync with remote after pulling: {retry.detail}") from e

        self.config.update_timestamp()
        self.save_config()
        return SyncResult(True, "push", "Task cache pushed to GitHub successfully.", changed=True)

    def _run_push(self) -> GitResult:
        return self.git.run("push", self.config.remote_url(), self.config.branch)

    def _push_branch(self) -> None:
        result = self._run_push()
        if not result.ok:
            raise error_for(result)

    def _ensure_identity(self) -> None:
        if self.git.run("config", "user.email").ok:
            return
        self.git.check("config", "user.email", self.IDENTITY_EMAIL)
        self.git.check("config", "user.name", self.IDENTITY_NAME)

    def _checkout_branch(self) -> None:
        branch = self.config.branch
        if self.git.run("checkout", branch).ok:
            return
        created = self.git.run("checkout", "-b", branch)
        if not created.ok:
            logger.debug("Could not create branch %s: %s", branch, created.detail)

    def _stage_documents(self) -> None:
        paths = [path.name for path in self.store.document_paths()]
        if (self.repo_dir / ".gitignore").exists():
            paths.append(".gitignore")
        if paths:
            self.git.check("add", "--", *paths)

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------

    def pull(self) -> SyncResult:
        """Bring remote changes into the log directory.

        Raises:
            ConfigurationError: If sync is not configured
            GitCommandError: If git fails for a reason that is not recoverable
        """
        self._require_configured()
        self._state = SyncState.SYNCING
        try:
            result = self._pull_changes()
            if result.success and not result.skipped:
                self.config.update_timestamp()
                self.save_config()
            return result
        finally:
            if self._state == SyncState.SYNCING:
                self._state = SyncState.READY

    def _pull_changes(self) -> SyncResult:
        """Pull without touching last_sync; shared by pull and push recovery."""
        logger.info("Pulling task cache from GitHub...")
        self._prepare_repo()
        branch = self.config.branch

        if not self.git.remote_branch_exists(self.REMOTE, branch):
            return SyncResult(
                True, "pull", f"Remote branch {branch} not found. Nothing to pull.", skipped=True
            )

        success = SyncResult(True, "pull", "Task cache pulled from GitHub successfully.", changed=True)

        if self.git.commit_count() == 0:
            pulled = self.git.run("pull", self.REMOTE, branch)
            if not pulled.ok:
                logger.info("Pull into empty repository failed (%s); fetching instead", pulled.detail)
                self.git.check("fetch", self.REMOTE, branch)
                self.git.check("checkout", "-b", branch, f"{self.REMOTE}/{branch}")
            return success

        pulled = self.git.run("pull", self.REMOTE, branch)
        if pulled.ok:
            return success
        if pulled.reason == GitFailureReason.MERGE_CONFLICT:
            return self._conflict(pulled)
        if pulled.reason != GitFailureReason.DIVERGENT:
            raise error_for(pulled)

        logger.warning("Divergent branches detected. Attempting to merge...")
        self.git.check("fetch", self.REMOTE, branch)
        merged = self.git.run(
            "merge",
            f"{self.REMOTE}/{branch}",
            "--allow-unrelated-histories",
            "-m",
            self.MERGE_MESSAGE,
        )
        if not merged.ok:
            return self._conflict(merged)
        return success

    def _conflict(self, result: GitResult) -> SyncResult:
        self._state = SyncState.CONFLICT
        descriptor = ConflictDescriptor(
            repo_dir=str(self.repo_dir),
            branch=self.config.branch,
            reason=result.reason,
            detail=result.detail,
        )
        logger.error("Automatic merge failed: %s", result.detail)
        return SyncResult(
            False,
            "pull",
            "Automatic merge failed. Manual intervention required.",
            conflict=descriptor,
        )

    # -------------------------------------------------------------------------
    # Repository creation and reporting
    # -------------------------------------------------------------------------

    def create_repo(self) -> bool:
        """Create the configured GitHub repository if it does not exist.

        Returns:
            True if it was created, False if it already existed

        Raises:
            ConfigurationError: If the token or repository is missing
            GitHubAPIError: If GitHub answers with an unexpected status
        """
        if not self.config.token or not self.config.repository_id:
            raise ConfigurationError("GitHub token or repository name not configured.")
        return self.client.ensure_repository(self.config.repository_id)

    def status(self) -> dict[str, Any]:
        """Summarize the sync configuration."""
        config = self.config
        if not config.enabled:
            return {"enabled": False, "message": "GitHub sync is not enabled."}
        if not config.repository_id or not config.token:
            return {"enabled": False, "message": "GitHub sync is not fully configured."}
        return {
            "enabled": True,
            "repository": config.repository_id,
            "branch": config.branch,
            "auto_sync": config.auto_sync,
            "sync_on_start": config.sync_on_start,
            "last_sync": _format_timestamp(config.last_sync),
            "state": self.state.value,
        }

    def debug_info(self) -> dict[str, Any]:
        """Collect configuration and repository details for troubleshooting.

        The token itself is never included.
        """
        config = self.config
        info: dict[str, Any] = {
            "directory": str(self.repo_dir),
            "config_file": str(self.config_path),
            "config_exists": Path(self.config_path).exists(),
            "enabled": config.enabled,
            "repository": config.repository_id or "Not set",
            "branch": config.branch or "Not set",
            "token": f"{len(config.token)} characters" if config.token else "Not set",
            "auto_sync": config.auto_sync,
            "git_initialized": self.git.is_repo(),
        }
        if not info["git_initialized"]:
            return info

        remote = self.git.run("remote", "get-url", self.REMOTE)
        info["remote_url"] = mask_credentials(remote.stdout.strip()) if remote.ok else "Not set"
        status = self.git.run("status", "--porcelain")
        if status.ok:
            info["uncommitted_changes"] = bool(status.stdout.strip())
        else:
            info["git_error"] = status.detail
        current = self.git.run("branch", "--show-current")
        info["current_branch"] = current.stdout.strip() or "Not on any branch"
        info["merge_in_progress"] = self.git.merge_in_progress()
        return info


def _format_timestamp(value: str | None) -> str:
    if not value:
        return "Never"
    try:
        return datetime.fromisoformat(value).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return value
