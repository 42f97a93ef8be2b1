"""Data models for task cache."""

from .config import (
    CONFIG_FILENAME,
    SETTINGS_FILENAME,
    TEMPLATE,
    AppSettings,
    SyncConfig,
    TemplateItem,
)

__all__ = [
    "CONFIG_FILENAME",
    "SETTINGS_FILENAME",
    "TEMPLATE",
    "AppSettings",
    "SyncConfig",
    "TemplateItem",
]
