from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process configuration, read from the environment and an optional ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "VendorFlow API"
    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./vendorflow.db"
    cors_allow_origins: str = "http://localhost:3000"

    # auth
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # vendor parser
    llm_provider: str = "mock"
    llm_model: str = "mock-vendor-parser-v1"
    llm_timezone: str = "UTC"
    llm_timeout_seconds: float = 180.0
    llm_max_input_chars: int = 60000
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    cerebras_api_key: str | None = None
    cerebras_model: str = "gpt-oss-120b"
    pdf_max_upload_mb: int = 20

    # money
    default_vendor_currency: str = "EUR"
    default_converted_currency: str = "USD"
    exchange_rate_api_url: str = "https://api.frankfurter.app/latest"
    exchange_rate_cache_ttl_seconds: int = 60 * 60 * 24
    payment_reminder_window_days: int = 7

    # import sessions
    import_session_max_idle_minutes: int = 6 * 60

    @field_validator("default_vendor_currency", "default_converted_currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("llm_provider")
    @classmethod
    def _provider_name(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def pdf_max_upload_bytes(self) -> int:
        return max(0, self.pdf_max_upload_mb) * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
