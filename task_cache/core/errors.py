"""Exceptions raised by task cache operations."""


class TaskCacheError(Exception):
    """Base class for errors reported to the operator."""


class ConfigurationError(TaskCacheError):
    """Sync is disabled, or the repository or token is missing."""


class ToolUnavailableError(TaskCacheError):
    """The git executable could not be found."""


class NetworkOrAuthError(TaskCacheError):
    """A remote call failed for network or authentication reasons."""


class SyncError(TaskCacheError):
    """A sync operation failed and could not be recovered."""
