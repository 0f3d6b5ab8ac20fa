"""
Application configuration

All settings are managed with Pydantic Settings and read from environment
variables or the .env file in the project root, with type validation and
defaults.

Key concepts:
- BaseSettings: reads values from the environment automatically
- computed_field: values derived from other fields
- model_validator: cross-field validation after loading
"""
import secrets
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_list(v: Any) -> list[str] | str:
    """
    Parse a list setting (CORS origins, admin ids)

    Accepts either a comma separated string
    ("http://localhost:3000,http://localhost:5173") or a list.

    Raises:
        ValueError: when the value is neither
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    Service settings

    Priority order:
    1. environment variables
    2. .env file
    3. defaults declared here
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    # Shared JWT secret of the identity provider; access tokens are verified with it.
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_list)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS origins without trailing slashes."""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str
    SENTRY_DSN: HttpUrl | None = None

    POSTGRES_SERVER: str
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Redis backs the subscription read-model cache
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    # Read-model cache TTLs (seconds)
    SUBSCRIPTION_CACHE_TTL_SECONDS: int = 5 * 60
    ADMIN_ROLE_CACHE_TTL_SECONDS: int = 10 * 60

    # Paddle Billing
    PADDLE_API_KEY: str | None = None
    PADDLE_PRICE_ID: str | None = None
    PADDLE_WEBHOOK_SECRET: str | None = None
    PADDLE_API_BASE_URL: str = "https://api.paddle.com"

    # LemonSqueezy
    LEMONSQUEEZY_API_KEY: str | None = None
    LEMONSQUEEZY_WEBHOOK_SECRET: str | None = None
    LEMONSQUEEZY_API_BASE_URL: str = "https://api.lemonsqueezy.com/v1"

    # Identity provider admin API (user lookup by email)
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    IDENTITY_LOOKUP_MAX_PAGES: int = 10
    IDENTITY_LOOKUP_PAGE_SIZE: int = 1000

    # Identity provider user ids granted the admin role by initial_data
    INITIAL_ADMIN_USER_IDS: Annotated[list[str] | str, BeforeValidator(parse_list)] = []

    CHECKOUT_SUCCESS_URL: str = "https://scoutflow-app.lovable.app/dashboard?subscription=success"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Webhook authenticity policy.
    # None means "derive from ENVIRONMENT": unsigned deliveries are only
    # accepted locally when no webhook secret is configured.
    WEBHOOK_ALLOW_UNSIGNED: bool | None = None
    WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS: int = 300

    @computed_field  # type: ignore[prop-decorator]
    @property
    def webhook_allow_unsigned(self) -> bool:
        if self.WEBHOOK_ALLOW_UNSIGNED is not None:
            return self.WEBHOOK_ALLOW_UNSIGNED
        return self.ENVIRONMENT == "local"

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        Refuse the placeholder value "changethis" for sensitive settings

        Locally this only warns; any other environment raises.

        Raises:
            ValueError: when a default secret is used outside local
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("PADDLE_WEBHOOK_SECRET", self.PADDLE_WEBHOOK_SECRET)
        self._check_default_secret("LEMONSQUEEZY_WEBHOOK_SECRET", self.LEMONSQUEEZY_WEBHOOK_SECRET)

        return self


settings = Settings()  # type: ignore
