"""Configuration package."""

from shop_ledger.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LocalSnapshotSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LocalSnapshotSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
