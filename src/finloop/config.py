"""Centralized configuration management for finloop.

This module provides a Pydantic Settings-based configuration system that
consolidates the SimpleFIN client, sync pipeline and logging settings with
environment variable integration, type validation, and clear error handling.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROFILE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class SimplefinConfig(BaseModel):
    """SimpleFIN Bridge client settings."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = Field(
        default=25.0,
        gt=0,
        le=120.0,
        description="Hard wait bound for one upstream read, in seconds",
    )
    initial_lookback_days: int = Field(
        default=90,
        ge=1,
        le=730,
        description="Days of history requested on a connection's first sync",
    )
    incremental_lookback_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days of history requested on subsequent syncs",
    )
    transaction_id_prefix: str = Field(
        default="sf", min_length=1, description="Namespace for local transaction ids"
    )


class SyncConfig(BaseModel):
    """Reconciliation and matching behaviour."""

    model_config = ConfigDict(frozen=True)

    posted_policy: Literal["immutable", "refresh"] = Field(
        default="immutable",
        description=(
            "How settled transactions react to changed upstream data: "
            "'immutable' ignores them, 'refresh' adopts provider corrections"
        ),
    )
    payment_match_tolerance: int = Field(
        default=100,
        ge=0,
        description="Allowed difference in minor units when matching payments",
    )


class LoggingConfig(BaseModel):
    """Logging configuration settings."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_to_file: bool = Field(default=False, description="Enable file logging")
    log_file_path: Path = Field(
        default=Path("logs/finloop.log"), description="Path to log file"
    )
    max_file_size_mb: int = Field(
        default=50, ge=1, le=1000, description="Maximum log file size in MB"
    )
    backup_count: int = Field(
        default=5, ge=1, le=50, description="Number of log file backups to keep"
    )


class FinloopSettings(BaseSettings):
    """Main application settings with environment variable integration.

    Environment variables are loaded with the FINLOOP_ prefix.
    For nested configs, use double underscores: FINLOOP_SIMPLEFIN__TIMEOUT_SECONDS

    Profile Support:
    - Loads from .env.{profile} files (e.g., .env.alice, .env.household)
    - Falls back to .env when no profile file exists
    """

    simplefin: SimplefinConfig = Field(default_factory=SimplefinConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    debug: bool = Field(default=False, description="Enable debug mode")
    profile: str = Field(
        default="default",
        description="User profile name (e.g., alice, bob, household)",
    )

    @field_validator("profile")
    @classmethod
    def validate_profile_name(cls, v: str) -> str:
        """Ensure profile name is safe for use as a filename."""
        if not v:
            raise ValueError("Profile name cannot be empty")
        if not _PROFILE_PATTERN.match(v):
            raise ValueError(
                "Profile name must contain only alphanumeric characters, "
                "dashes, and underscores"
            )
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Load the profile-specific env file instead of the default one."""
        init_dict = init_settings.init_kwargs if init_settings else {}
        profile = init_dict.get("profile", "default")  # type: ignore[reportUnknownMemberType]

        profile_env_file = Path(f".env.{profile}")
        env_file = str(profile_env_file) if profile_env_file.exists() else ".env"

        from pydantic_settings import DotEnvSettingsSource

        custom_dotenv = DotEnvSettingsSource(
            settings_cls,
            env_file=env_file,
            env_file_encoding="utf-8",
        )

        # Later sources override earlier ones
        return (
            init_settings,
            env_settings,
            custom_dotenv,
            file_secret_settings,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FINLOOP_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


# Global settings instances - lazy loaded per profile
_settings_cache: dict[str, FinloopSettings] = {}
_current_profile: str = "default"


def _validate_profile(profile: str) -> None:
    if not profile:
        raise ValueError("Profile name cannot be empty")
    if not _PROFILE_PATTERN.match(profile):
        raise ValueError(
            f"Invalid profile: {profile}. "
            "Profile name must contain only alphanumeric characters, dashes, and underscores"
        )


def get_settings(profile: str | None = None) -> FinloopSettings:
    """Get the settings instance for the specified user profile.

    Settings are loaded once per profile and cached.

    Args:
        profile: User profile name. Defaults to the current profile.

    Returns:
        FinloopSettings: The configuration instance for the profile

    Raises:
        ValueError: If configuration is invalid
    """
    if profile is None:
        profile = _current_profile

    if profile in _settings_cache:
        return _settings_cache[profile]

    try:
        settings = FinloopSettings(profile=profile)
    except Exception as e:
        raise ValueError(f"Configuration error for profile '{profile}': {e}") from e

    _settings_cache[profile] = settings
    return settings


def set_current_profile(profile: str) -> None:
    """Set the current active user profile.

    Raises:
        ValueError: If profile name contains invalid characters
    """
    global _current_profile

    _validate_profile(profile)
    _current_profile = profile


def get_current_profile() -> str:
    """Get the current active user profile."""
    return _current_profile


def reload_settings(profile: str | None = None) -> FinloopSettings:
    """Reload settings from environment variables.

    Useful for testing or when environment variables change at runtime.

    Args:
        profile: Profile to reload. If None, reloads current profile.

    Returns:
        FinloopSettings: The reloaded configuration instance
    """
    if profile is None:
        profile = _current_profile

    _settings_cache.pop(profile, None)
    return get_settings(profile)


def clear_settings_cache() -> None:
    """Drop every cached settings instance."""
    _settings_cache.clear()


def get_simplefin_config() -> SimplefinConfig:
    """Get the SimpleFIN configuration for the current profile."""
    return get_settings().simplefin


def get_logging_config() -> LoggingConfig:
    """Get the logging configuration for the current profile."""
    return get_settings().logging
