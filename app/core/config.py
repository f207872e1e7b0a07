from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PAYSAFE_BASE_URLS = {
    "TEST": "https://api.test.paysafe.com",
    "LIVE": "https://api.paysafe.com",
}


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "GymStack"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    JWT_SECRET: str = "change_me"
    FRONTEND_URL: str = "https://app.gymstack.io"

    # Base currency for charges that do not specify one (ISO 4217, lower-case)
    DEFAULT_CURRENCY: str = "usd"

    # Stripe (durable customers + Connect sub-accounts)
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_TIMEOUT_SECONDS: int = 10

    # Paysafe (single-use payment handle tokens)
    PAYSAFE_API_USERNAME: str | None = None
    PAYSAFE_API_PASSWORD: str | None = None
    PAYSAFE_ENVIRONMENT: str = "TEST"
    PAYSAFE_BASE_URL: str | None = None
    PAYSAFE_SINGLE_USE_TOKEN: str | None = None  # Public key for Paysafe.js tokenization
    PAYSAFE_TIMEOUT_SECONDS: int = 10

    # Connect reservations without a remote account older than this are reclaimed
    CONNECT_RESERVATION_TTL_SECONDS: int = 900

    RATE_LIMIT_WEBHOOK: str = "120/minute"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    @field_validator("DEFAULT_CURRENCY", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        """Stripe expects lower-case currency codes."""
        if v is None:
            return v
        return str(v).strip().lower()

    @field_validator("PAYSAFE_ENVIRONMENT", mode="before")
    @classmethod
    def normalize_paysafe_environment(cls, v):
        value = str(v or "TEST").strip().upper()
        return "LIVE" if value == "LIVE" else "TEST"

    @property
    def paysafe_base_url(self) -> str:
        return self.PAYSAFE_BASE_URL or PAYSAFE_BASE_URLS[self.PAYSAFE_ENVIRONMENT]

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        required_in_prod = (
            "DATABASE_URL",
            "JWT_SECRET",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
        )
        if self.ENV.lower() == "prod":
            missing = [name for name in required_in_prod if not getattr(self, name)]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
            if self.JWT_SECRET == "change_me":
                raise ValueError("Insecure default secrets in production: JWT_SECRET uses default placeholder")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./gymstack_dev.db"
    FRONTEND_URL: str = "http://localhost:3000"
    STRIPE_SECRET_KEY: str = "sk_test_dev"
    STRIPE_WEBHOOK_SECRET: str = "whsec_dev"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    FRONTEND_URL: str = "http://localhost:3000"
    STRIPE_SECRET_KEY: str = "sk_test_gymstack"
    STRIPE_WEBHOOK_SECRET: str = "whsec_test_gymstack"
    PAYSAFE_API_USERNAME: str = "test-paysafe-user"
    PAYSAFE_API_PASSWORD: str = "test-paysafe-password"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://app.gymstack.io",
        "https://www.gymstack.io",
    ]
    LOG_FORMAT: str = "json"
    PAYSAFE_ENVIRONMENT: str = "LIVE"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
