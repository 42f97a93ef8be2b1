"""Core task cache functionality."""

from .auth import GitHubAuth
from .client import GitHubAPIError, GitHubClient
from .errors import (
    ConfigurationError,
    NetworkOrAuthError,
    SyncError,
    TaskCacheError,
    ToolUnavailableError,
)
from .formatter import format_log
from .git import (
    GitCommandError,
    GitFailureReason,
    GitRemoteError,
    GitResult,
    GitRunner,
    TransientSyncConflict,
)
from .storage import LogStore, SearchHit, SectionMatch, parse_date
from .sync import ConflictDescriptor, SyncController, SyncResult, SyncState

__all__ = [
    "ConfigurationError",
    "ConflictDescriptor",
    "GitCommandError",
    "GitFailureReason",
    "GitHubAPIError",
    "GitHubAuth",
    "GitHubClient",
    "GitRemoteError",
    "GitResult",
    "GitRunner",
    "LogStore",
    "NetworkOrAuthError",
    "SearchHit",
    "SectionMatch",
    "SyncController",
    "SyncError",
    "SyncResult",
    "SyncState",
    "TaskCacheError",
    "ToolUnavailableError",
    "TransientSyncConflict",
    "format_log",
    "parse_date",
]
