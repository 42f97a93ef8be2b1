"""Blocking git invocation with structured failure classification."""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import NetworkOrAuthError, TaskCacheError, ToolUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

# Exit codes used for failures that never reached git
TIMEOUT_EXIT = 124
UNAVAILABLE_EXIT = 127

CREDENTIALS_RE = re.compile(r"//[^/@\s]+@")


class GitFailureReason(str, Enum):
    """Why a git command failed."""

    NONE = "none"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    MERGE_CONFLICT = "merge_conflict"
    DIVERGENT = "divergent"
    REJECTED = "rejected"
    IDENTITY_UNKNOWN = "identity_unknown"
    AUTH = "auth"
    NETWORK = "network"
    REMOTE_NOT_FOUND = "remote_not_found"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# Checked in order; the first pattern found in the lowercased output wins
FAILURE_PATTERNS: tuple[tuple[GitFailureReason, tuple[str, ...]], ...] = (
    (
        GitFailureReason.NOTHING_TO_COMMIT,
        ("nothing to commit", "nothing added to commit", "working tree clean"),
    ),
    (GitFailureReason.MERGE_CONFLICT, ("automatic merge failed", "conflict (", "fix conflicts")),
    (
        GitFailureReason.DIVERGENT,
        (
            "divergent branches",
            "need to specify how to reconcile",
            "refusing to merge unrelated histories",
        ),
    ),
    (
        GitFailureReason.REJECTED,
        ("[rejected]", "non-fast-forward", "updates were rejected", "fetch first"),
    ),
    (
        GitFailureReason.IDENTITY_UNKNOWN,
        ("author identity unknown", "unable to auto-detect email address"),
    ),
    (
        GitFailureReason.AUTH,
        (
            "authentication failed",
            "could not read username",
            "permission denied",
            "[remote rejected]",
            "error: 403",
        ),
    ),
    (GitFailureReason.REMOTE_NOT_FOUND, ("repository not found", "couldn't find remote ref")),
    (
        GitFailureReason.NETWORK,
        ("could not resolve host", "unable to access", "connection timed out", "failed to connect"),
    ),
)

REMOTE_REASONS = frozenset(
    {
        GitFailureReason.AUTH,
        GitFailureReason.NETWORK,
        GitFailureReason.REMOTE_NOT_FOUND,
        GitFailureReason.TIMEOUT,
    }
)


def mask_credentials(text: str) -> str:
    """Hide credentials embedded in URLs (https://token@host -> https://***@host)."""
    return CREDENTIALS_RE.sub("//***@", text)


def classify_failure(returncode: int, output: str) -> GitFailureReason:
    """Map a failed command's exit code and output to a failure reason."""
    if returncode == 0:
        return GitFailureReason.NONE
    if returncode == TIMEOUT_EXIT and "timed out after" in output:
        return GitFailureReason.TIMEOUT
    if returncode == UNAVAILABLE_EXIT and "git executable not found" in output:
        return GitFailureReason.UNAVAILABLE

    lowered = output.lower()
    for reason, patterns in FAILURE_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return reason
    return GitFailureReason.UNKNOWN


@dataclass(frozen=True)
class GitResult:
    """Outcome of one git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def reason(self) -> GitFailureReason:
        return classify_failure(self.returncode, f"{self.stderr}\n{self.stdout}")

    @property
    def detail(self) -> str:
        text = " ".join(self.stderr.split()) or " ".join(self.stdout.split())
        return mask_credentials(text) or f"exit={self.returncode}"

    @property
    def command(self) -> str:
        return mask_credentials(" ".join(("git",) + self.args))


class GitCommandError(TaskCacheError):
    """A git command failed."""

    def __init__(self, result: GitResult) -> None:
        super().__init__(f"{result.command} failed: {result.detail}")
        self.result = result
        self.reason = result.reason
        self.detail = result.detail


class TransientSyncConflict(GitCommandError):
    """Local and remote histories diverged; recoverable by pull or merge."""


class GitRemoteError(GitCommandError, NetworkOrAuthError):
    """The remote could not be reached or refused our credentials."""


def error_for(result: GitResult) -> TaskCacheError:
    """Build the exception matching a failed result's reason."""
    reason = result.reason
    if reason == GitFailureReason.UNAVAILABLE:
        return ToolUnavailableError("Git is not installed on your system")
    if reason in (GitFailureReason.DIVERGENT, GitFailureReason.REJECTED):
        return TransientSyncConflict(result)
    if reason in REMOTE_REASONS:
        return GitRemoteError(result)
    return GitCommandError(result)


class GitRunner:
    """Runs git commands inside one working directory."""

    def __init__(self, repo_dir: Path, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.repo_dir = Path(repo_dir)
        self.timeout = timeout

    def run(self, *args: str) -> GitResult:
        """Run a git command and return its result without raising."""
        command = ("git",) + args
        logger.debug("Running %s in %s", mask_credentials(" ".join(command)), self.repo_dir)
        try:
            proc = subprocess.run(
                list(command),
                cwd=str(self.repo_dir),
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except FileNotFoundError:
            return GitResult(args, UNAVAILABLE_EXIT, stderr="git executable not found")
        except subprocess.TimeoutExpired:
            return GitResult(args, TIMEOUT_EXIT, stderr=f"git timed out after {self.timeout:g}s")

        result = GitResult(args, proc.returncode, proc.stdout or "", proc.stderr or "")
        if not result.ok:
            logger.debug("%s exited %d (%s)", result.command, result.returncode, result.reason.value)
        return result

    def check(self, *args: str) -> GitResult:
        """Run a git command, raising the matching error on failure."""
        result = self.run(*args)
        if not result.ok:
            raise error_for(result)
        return result

    def is_available(self) -> bool:
        return self.run("--version").ok

    def is_repo(self) -> bool:
        return (self.repo_dir / ".git").exists()

    def has_staged_changes(self) -> bool:
        """Whether the index differs from HEAD; untracked files are ignored."""
        result = self.run("diff", "--cached", "--quiet")
        # --quiet exits 1 when there are differences
        if result.returncode == 1:
            return True
        if not result.ok:
            raise error_for(result)
        return False

    def commit_count(self) -> int:
        """Number of commits reachable from HEAD (0 when there is no history)."""
        result = self.run("rev-list", "--count", "HEAD")
        if not result.ok:
            return 0
        try:
            return int(result.stdout.strip())
        except ValueError:
            return 0

    def remote_branch_exists(self, remote: str, branch: str) -> bool:
        """Check a remote branch with ls-remote.

        Raises:
            GitCommandError: If the remote could not be queried
        """
        result = self.run("ls-remote", "--exit-code", "--heads", remote, branch)
        # --exit-code makes ls-remote exit 2 when no matching ref exists
        if result.returncode == 2:
            return False
        if not result.ok:
            raise error_for(result)
        return bool(result.stdout.strip())

    def merge_in_progress(self) -> bool:
        return (self.repo_dir / ".git" / "MERGE_HEAD").exists()
