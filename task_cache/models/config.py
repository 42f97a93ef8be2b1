"""Configuration and data models for task cache."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".github-config.json"
SETTINGS_FILENAME = "settings.yaml"
DEFAULT_BRANCH = "main"


@dataclass(frozen=True)
class TemplateItem:
    """One question asked when creating a log, and the section it fills."""

    prompt: str
    section_title: str


TEMPLATE: tuple[TemplateItem, ...] = (
    TemplateItem("What did you do today?", "What I Did"),
    TemplateItem("What's next on your plate?", "What's Next"),
    TemplateItem("What broke or got weird?", "What Broke or Got Weird"),
    TemplateItem("Any other notes? (optional)", "Notes"),
)


@dataclass
class SyncConfig:
    """Persisted GitHub sync configuration.

    This is the only durable sync state: it is created with defaults on first
    run, changed by setup, and stamped with ``last_sync`` after every
    successful push or pull.
    """

    enabled: bool = False
    repository_id: str = ""  # "owner/name"
    branch: str = DEFAULT_BRANCH
    auto_sync: bool = False
    sync_on_start: bool = False
    last_sync: str | None = None  # ISO timestamp
    token: str = field(default="", repr=False)

    @property
    def is_configured(self) -> bool:
        """True when sync is enabled and has both a repository and a token."""
        return bool(self.enabled and self.repository_id and self.token)

    def remote_url(self) -> str:
        """HTTPS remote URL with the token embedded for authentication."""
        return f"https://{self.token}@github.com/{self.repository_id}.git"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "enabled": self.enabled,
            "repository_id": self.repository_id,
            "branch": self.branch,
            "auto_sync": self.auto_sync,
            "sync_on_start": self.sync_on_start,
            "last_sync": self.last_sync,
            "token": self.token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        """Create from dictionary."""
        return cls(
            enabled=bool(data.get("enabled", False)),
            repository_id=data.get("repository_id", "") or "",
            branch=data.get("branch") or DEFAULT_BRANCH,
            auto_sync=bool(data.get("auto_sync", False)),
            sync_on_start=bool(data.get("sync_on_start", False)),
            last_sync=data.get("last_sync"),
            token=data.get("token", "") or "",
        )

    @classmethod
    def load(cls, config_path: Path) -> "SyncConfig":
        """Load configuration from JSON, falling back to defaults."""
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()
        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f) or {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading sync config %s: %s", config_path, e)
            return cls()
        if not isinstance(data, dict):
            logger.error("Error loading sync config %s: expected a JSON object", config_path)
            return cls()
        return cls.from_dict(data)

    def save(self, config_path: Path) -> None:
        """Save configuration to JSON, readable by the owner only."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")
        try:
            os.chmod(config_path, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", config_path)

    def update_timestamp(self) -> None:
        """Update last_sync to now."""
        self.last_sync = datetime.now(timezone.utc).isoformat()


@dataclass
class AppSettings:
    """Optional settings read from settings.yaml in the log directory."""

    default_branch: str = DEFAULT_BRANCH
    git_timeout: float = 120.0
    api_base_url: str = "https://api.github.com"
    verbose: bool = False

    @classmethod
    def load(cls, settings_path: Path) -> "AppSettings":
        """Load settings from YAML file, or return defaults if it is missing.

        Raises:
            ValueError: If the file is not a mapping or holds invalid values
        """
        settings_path = Path(settings_path)
        if not settings_path.exists():
            return cls()

        with open(settings_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{settings_path.name} must contain a mapping of settings")

        default_branch = data.get("default_branch", DEFAULT_BRANCH)
        if not isinstance(default_branch, str) or not default_branch.strip():
            raise ValueError("default_branch must be a non-empty string")

        try:
            git_timeout = float(data.get("git_timeout", 120.0))
        except (TypeError, ValueError) as e:
            raise ValueError(f"git_timeout must be a number of seconds: {e}") from e
        if git_timeout <= 0:
            raise ValueError("git_timeout must be positive")

        return cls(
            default_branch=default_branch.strip(),
            git_timeout=git_timeout,
            api_base_url=str(data.get("api_base_url", "https://api.github.com")).rstrip("/"),
            verbose=bool(data.get("verbose", False)),
        )
