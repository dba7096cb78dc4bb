"""
Configuration Management for Ahorros

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Defaults match what a fresh install of the tracker starts with, so the
package works with no environment at all.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local document storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AHORROS_STORAGE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path(".ahorros"),
        description="Directory holding the persisted documents"
    )
    storage_key: str = Field(
        default="ahorros_app_v1",
        min_length=1,
        description="Key under which the application document is stored"
    )


class ImportSettings(BaseSettings):
    """Import pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AHORROS_IMPORT_",
        extra="ignore"
    )

    csv_delimiter: Optional[str] = Field(
        default=None,
        description="Delimiter for CSV imports (None = detect)"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    preview_rows: int = Field(
        default=5,
        ge=1,
        le=50,
        description="How many rows an import preview shows"
    )

    @field_validator('csv_delimiter')
    @classmethod
    def validate_delimiter(cls, v: Optional[str]) -> Optional[str]:
        """A delimiter must be exactly one character."""
        if v is None or v == "":
            return None
        if v == "\\t":
            return "\t"
        if len(v) != 1:
            raise ValueError(f"CSV delimiter must be a single character, got {v!r}")
        return v

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG whatever log_level says"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Defaults for a fresh document
    currency: str = Field(
        default="MXN",
        min_length=3,
        max_length=3,
        description="Display currency (no conversion is ever performed)"
    )
    default_user_name: str = Field(
        default="Usuario",
        description="User name written into a fresh document"
    )
    default_interest_rate: float = Field(
        default=11.0,
        ge=0.0,
        le=100.0,
        description="Annual interest rate (%) used by the simulator"
    )
    default_emergency_fund_months: int = Field(
        default=3,
        ge=1,
        le=24,
        description="Months of fixed expenses the emergency fund should cover"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept level names in any case."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


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

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def importing(self) -> ImportSettings:
        return ImportSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for every section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "importing", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
