"""Application configuration."""

from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.provider import ProviderKind


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Provider API keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openrouter_api_key: str = ""
    # Any other provider: JSON object, e.g. API_KEYS='{"groq": "gsk-..."}'
    api_keys: dict[str, str] = {}

    # Base URL for the "other" (custom endpoint) provider
    custom_base_url: str = ""

    # Provider calls
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)  # seconds, doubled on each retry
    request_timeout: float = 120.0  # seconds
    default_temperature: Optional[float] = None

    # Pipelines
    max_stored_turns: int = 50

    # Application settings
    environment: str = "development"
    log_level: str = "INFO"
    verbose_logging: Optional[bool] = None  # None: verbose in development only

    # CORS Configuration
    # Comma-separated list of allowed origins.
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_api_key(self, provider: ProviderKind) -> str:
        """Look up the configured key for a provider, or "" if none."""
        if provider.value in self.api_keys:
            return self.api_keys[provider.value]
        return getattr(self, f"{provider.value}_api_key", "")

    def configured_providers(self) -> dict[str, bool]:
        """Which providers have a key configured."""
        return {kind.value: bool(self.get_api_key(kind)) for kind in ProviderKind if kind != ProviderKind.OTHER}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
