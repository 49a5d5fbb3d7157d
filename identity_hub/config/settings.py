"""
Configuration Management for Identity Hub

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeRateSettings(BaseSettings):
    """Foreign-exchange rate provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_RATES_",
        extra="ignore"
    )

    provider_url: str = Field(
        default="https://api.frankfurter.app",
        description="Base URL of the exchange-rate provider"
    )
    cache_ttl_hours: int = Field(
        default=24,
        ge=1,
        description="How long a cached rate table is served as fresh"
    )
    fallback_currency: str = Field(
        default="GBP",
        min_length=3,
        max_length=3,
        description="Base currency used when no costs exist"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for the single rate request"
    )

    @field_validator('fallback_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class StorageSettings(BaseSettings):
    """Which keyed store backs the identity graph."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="json",
        pattern="^(memory|json|google_sheets)$",
        description="Storage backend: memory, json or google_sheets"
    )
    data_dir: str = Field(
        default="data",
        description="Directory for the flat-file JSON backend"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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

    # Each collection gets its own worksheet, prefixed to avoid clashes
    worksheet_prefix: str = Field(
        default="ih_",
        description="Prefix for collection worksheets"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the identity agent."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$",
        description="Minimum level for structured logs"
    )

    # Defaults applied to agent-created records
    default_identity_type: str = Field(
        default="personal",
        pattern="^(personal|business|project|other)$",
        description="Identity type when a create_identity command omits it"
    )
    default_subscription_currency: str = Field(
        default="GBP",
        description="Currency when an add_subscription command omits it"
    )

    # Context size sent to the agent
    max_agent_context_records: int = Field(
        default=200,
        ge=1,
        description="Maximum records per collection included in agent context"
    )


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
    def exchange_rates(self) -> ExchangeRateSettings:
        return ExchangeRateSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    Useful for startup checks.
    """
    results: dict[str, bool | str] = {}

    settings = get_settings()

    for name in ("exchange_rates", "storage", "google_sheets", "gemini", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
