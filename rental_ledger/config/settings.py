"""
Configuration Management for Rental Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _warn_missing_credentials(path: Optional[str], service: str) -> None:
    """Warn if a credentials file doesn't exist (but don't fail - might be mounted later)."""
    if path and not Path(path).exists():
        import warnings
        warnings.warn(
            f"{service} credentials file not found at {path}. "
            "Make sure it exists before running the application."
        )


class FirestoreSettings(BaseSettings):
    """Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project that owns the Firestore database"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description=(
            "Path to a service account credentials JSON. "
            "If unset, Application Default Credentials are used."
        )
    )
    database: str = Field(
        default="(default)",
        description="Firestore database id"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        _warn_missing_credentials(v, "Firestore")
        return v


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit log configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        _warn_missing_credentials(v, "Google")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Audit persistence
    audit_to_sheets: bool = Field(
        default=False,
        description="Persist audit events to Google Sheets (local structured log is always on)"
    )

    # Accepted range for caller-supplied periods
    min_year: int = Field(
        default=2020,
        ge=1,
        description="Earliest year a caller may ask to generate from or to"
    )
    max_year: int = Field(
        default=2030,
        ge=1,
        description="Latest year a caller may ask to generate from or to"
    )

    @model_validator(mode='after')
    def validate_year_window(self) -> 'AppSettings':
        if self.max_year < self.min_year:
            raise ValueError("max_year cannot be before min_year")
        return self


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firestore
        results["firestore"] = True
    except Exception as e:
        results["firestore"] = False
        results["firestore_error"] = str(e)

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
