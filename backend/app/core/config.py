"""Application configuration loaded from environment variables.

Settings for database, HTTP surface, access credentials, and the magic link
policy (expiry, per-email ceiling, role allow/deny lists, email text).
Uses pydantic-settings for validation and .env file support.

The module-level ``settings`` snapshot is built once at import time.
Services take a ``Settings`` instance in their constructor so tests can
pass their own without touching the global.
"""

from typing import Annotated, Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "magic_link_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "magic_link"
    database_user: str = "magic_link_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full SQLAlchemy URL; wins over the discrete fields when set
    database_url_override: str = ""

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Access credentials minted on successful verification
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "magic-link-auth"
    auth_audience: str = "magic-link-auth"
    access_token_ttl_minutes: int = 15
    refresh_token_ttl_days: int = 7
    refresh_cookie_name: str = "magic_link_refresh_token"

    # Public URL used to build the default verification link
    public_url: str = "http://localhost:8000"

    # Magic link policy
    magic_link_verify_endpoint: str = "/api/v1/magic-link/verify"
    magic_link_expiration_minutes: int = 15
    magic_link_max_requests_per_hour: int = 5
    magic_link_allowed_roles: Annotated[list[str], NoDecode] = []
    magic_link_disallowed_roles: Annotated[list[str], NoDecode] = []
    magic_link_subject: str = "Your Magic Login Link"
    # Honour caller redirect URLs only for allowed_origins and public_url
    magic_link_restrict_redirects: bool = True

    # Email (Resend HTTP API)
    email_from: str = '"Magic Link" <noreply@example.com>'
    resend_api_key: SecretStr = SecretStr("")

    # Rate Limiting (per-IP, slowapi)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_verify: str = "30/minute"
    rate_limit_enabled: bool = True  # Disable for testing

    @field_validator(
        "magic_link_allowed_roles", "magic_link_disallowed_roles", mode="before"
    )
    @classmethod
    def split_role_list(cls, value: Any) -> Any:
        """Accept a comma-separated string ("admin, editor") for role lists.

        Entries are trimmed and empty entries dropped, so an unset or blank
        variable yields an empty list (no restriction).
        """
        if value is None:
            return []
        if isinstance(value, str):
            return [role.strip() for role in value.split(",") if role.strip()]
        return value

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        """Whether the service runs with production hardening."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Token lifetime and per-email ceiling must be positive (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.magic_link_expiration_minutes <= 0:
            msg = (
                "MAGIC_LINK_EXPIRATION_MINUTES must be positive. "
                f"Got: {self.magic_link_expiration_minutes}"
            )
            raise ValueError(msg)
        if self.magic_link_max_requests_per_hour <= 0:
            msg = (
                "MAGIC_LINK_MAX_REQUESTS_PER_HOUR must be positive. "
                f"Got: {self.magic_link_max_requests_per_hour}"
            )
            raise ValueError(msg)

        # CORS wildcard with credentials is invalid (all environments)
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.is_production:
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
