"""Application configuration."""

import os

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scan_resolver.domain.errors import ConfigurationError

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    environment: str = _ENVIRONMENT
    log_level: str = "INFO"

    enable_gs1_trade_exact: bool = False
    enable_gs1_image: bool = False
    enable_salling_group: bool = False
    enable_rema1000: bool = False
    enable_coop: bool = False
    enable_open_food_facts: bool = True

    gs1_trade_exact_api_key: str | None = None
    gs1_image_api_key: str | None = None
    salling_group_token: str | None = None
    rema1000_api_key: str | None = None
    coop_api_key: str | None = None

    gs1_trade_exact_base_url: str = "https://api.gs1.org/trade-exact/v1"
    gs1_image_base_url: str = "https://api.gs1.org/image/v1"
    salling_group_base_url: str = "https://api.sallinggroup.com/v1"
    rema1000_base_url: str = "https://api.rema1000.dk/v1"
    coop_base_url: str = "https://api.coop.dk/v1"
    open_food_facts_base_url: str = "https://world.openfoodfacts.org/api/v2"
    ingredients_language: str = "da"

    source_timeout_seconds: float = 10.0
    source_retry_attempts: int = 1
    source_retry_delay_seconds: float = 0.5

    cache_fresh_hours: float = 24.0
    cache_retention_days: float = 7.0
    negative_cache_hours: float = 6.0
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    cache_table: str = "product_cache"

    scanner_debounce_ms: int = 800
    scanner_lookup_timeout_ms: int = 12000
    scanner_safety_timeout_ms: int = 15000
    scanner_auto_resume_on_error: bool = False

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


class ScannerConfig(BaseModel):
    """Timing policy for a scan session controller."""

    debounce_ms: int = Field(default=800, ge=0)
    lookup_timeout_ms: int = Field(default=12000, gt=0)
    safety_timeout_ms: int = Field(default=15000, gt=0)
    auto_resume_on_error: bool = False
    auto_resume_delay_ms: int = Field(default=1000, ge=0)
    enable_logging: bool = True

    @model_validator(mode="after")
    def _check_safety_covers_lookup(self) -> "ScannerConfig":
        if self.safety_timeout_ms < self.lookup_timeout_ms:
            raise ConfigurationError(
                "safety_timeout_ms must be >= lookup_timeout_ms "
                f"(got {self.safety_timeout_ms} < {self.lookup_timeout_ms})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScannerConfig":
        """Build scanner timings from application settings."""
        return cls(
            debounce_ms=settings.scanner_debounce_ms,
            lookup_timeout_ms=settings.scanner_lookup_timeout_ms,
            safety_timeout_ms=settings.scanner_safety_timeout_ms,
            auto_resume_on_error=settings.scanner_auto_resume_on_error,
        )


def validate_source_config(settings: Settings) -> list[str]:
    """Return problems with enabled sources that lack credentials."""
    required = [
        (
            "GS1 Trade Exact",
            settings.enable_gs1_trade_exact,
            settings.gs1_trade_exact_api_key,
        ),
        ("GS1 Image", settings.enable_gs1_image, settings.gs1_image_api_key),
        (
            "Salling Group",
            settings.enable_salling_group,
            settings.salling_group_token,
        ),
        ("REMA 1000", settings.enable_rema1000, settings.rema1000_api_key),
        ("Coop", settings.enable_coop, settings.coop_api_key),
    ]
    errors: list[str] = []
    for name, enabled, credential in required:
        if enabled and not (credential or "").strip():
            errors.append(f"{name} is enabled but its credential is missing")
    return errors
