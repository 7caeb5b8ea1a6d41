from pydantic_settings import BaseSettings
from pydantic import ValidationError, field_validator
from typing import List, Optional

from fintrack.exceptions import ConfigurationError


class Settings(BaseSettings):
    # Security: SECRET_KEY encrypts aggregator access tokens at rest
    # Generate with: python -c "import secrets; print(secrets.token_urlsafe(32))"
    SECRET_KEY: Optional[str] = None

    # Database configuration
    DATABASE_URL: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    # Background job / Redis configuration
    REDIS_URL: str = "redis://redis:6379/0"
    SYNC_QUEUE_NAME: str = "account_sync"
    SYNC_JOB_TIMEOUT: int = 1800  # 30 minutes

    # Plaid configuration
    PLAID_CLIENT_ID: Optional[str] = None
    PLAID_SECRET: Optional[str] = None
    PLAID_ENVIRONMENT: str = "sandbox"  # sandbox or production
    PLAID_REQUEST_TIMEOUT: float = 30.0  # seconds, per API call
    PLAID_SYNC_PAGE_SIZE: int = 500
    PLAID_SYNC_MAX_PAGES: int = 200
    PLAID_SYNC_MAX_RESTARTS: int = 2
    PLAID_COUNTRY_CODES: str = "US"  # Comma-separated

    # Dwolla (payments processor) configuration
    DWOLLA_KEY: Optional[str] = None
    DWOLLA_SECRET: Optional[str] = None
    DWOLLA_ENV: str = "sandbox"  # sandbox or production
    DWOLLA_REQUEST_TIMEOUT: float = 30.0

    # Fan-out across accounts and transactions
    RECONCILE_MAX_WORKERS: int = 8

    @field_validator("SECRET_KEY")
    @classmethod
    def _validate_secret_key(cls, value):
        """
        Validate SECRET_KEY when one is provided.
        """
        if value is None:
            return value
        if len(value) < 32:
            raise ValueError(
                "SECRET_KEY must be at least 32 characters long. "
                "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        return value

    @field_validator("PLAID_ENVIRONMENT")
    @classmethod
    def _validate_plaid_environment(cls, value):
        env = (value or "").strip().lower()
        if env not in ("sandbox", "development", "production"):
            raise ValueError(
                "PLAID_ENVIRONMENT should either be set to `sandbox` or `production`"
            )
        return env

    @field_validator("DWOLLA_ENV")
    @classmethod
    def _validate_dwolla_env(cls, value):
        env = (value or "").strip().lower()
        if env not in ("sandbox", "production"):
            raise ValueError(
                "DWOLLA_ENV should either be set to `sandbox` or `production`"
            )
        return env

    @field_validator("PLAID_SYNC_MAX_PAGES", "RECONCILE_MAX_WORKERS")
    @classmethod
    def _validate_positive(cls, value):
        if value < 1:
            raise ValueError("value must be at least 1")
        return value

    @property
    def plaid_country_codes_list(self) -> List[str]:
        return [code.strip().upper() for code in self.PLAID_COUNTRY_CODES.split(",") if code.strip()]

    @property
    def is_plaid_configured(self) -> bool:
        """Check if Plaid credentials are present."""
        return bool(self.PLAID_CLIENT_ID and self.PLAID_SECRET)

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in the model


def load_settings(**overrides) -> Settings:
    """Build settings, failing fast with a ConfigurationError on invalid values."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


settings = load_settings()
