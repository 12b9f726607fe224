"""Configuration package."""

from expense_tracker.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    TesseractSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "TesseractSettings",
    "get_settings",
    "validate_all_settings",
]
