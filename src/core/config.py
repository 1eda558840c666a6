"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from services.exceptions import ConfigurationError


class SecurityOptions(BaseModel):
    """
    Options for the app-user/app-role security tables.

    Example environment:
        SECURITY__IDP_USER_NAME_CLAIM=preferred_username
        SECURITY__REFRESH_INTERVAL=3600000
    """

    # Claim carrying the user name issued by the identity provider
    idp_user_name_claim: str = "preferred_username"
    table_prefix: str = ""
    # Milliseconds before a cached role is looked up again
    refresh_interval: int = Field(default=1000 * 60 * 60, gt=0)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    # Connection strings keyed by context name (e.g. HitsContext)
    db_contexts: dict[str, str] = Field(default_factory=dict)
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_echo: bool = False

    security: SecurityOptions = Field(default_factory=SecurityOptions)

    # Count cache
    count_cache_tolerance_seconds: float = Field(default=60.0, ge=0)
    count_cache_max_entries: int = Field(default=1024, gt=0)

    # Roles cache
    roles_cache_max_entries: int = Field(default=10_000, gt=0)
    # Resolve roles in AppUserRolesMiddleware instead of per-route dependencies
    roles_middleware_enabled: bool = False

    # OpenID Connect identity provider
    idp_domain: str = ""
    idp_audience: str = ""

    # Development only - authenticates every request as this user
    fake_user: str | None = Field(default=None, validation_alias="FAKE_USER")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    @model_validator(mode="after")
    def validate_fake_user_security(self) -> "Settings":
        """
        Prevent FAKE_USER from being enabled against a remote database.

        FAKE_USER bypasses the identity provider entirely, so every configured
        connection string must point at a local (or file/in-memory) database.
        """
        if not self.fake_user:
            return self

        local_hosts = {"", "localhost", "127.0.0.1", "0.0.0.0", "::1"}
        for name, connection_string in self.db_contexts.items():
            try:
                hostname = make_url(connection_string).host or ""
            except ArgumentError:
                # Unparseable URLs block FAKE_USER
                hostname = connection_string
            if hostname.lower() not in local_hosts:
                raise ValueError(
                    f"FAKE_USER cannot be enabled with a non-local database. "
                    f"Context '{name}' points at host '{hostname}'. "
                    f"FAKE_USER bypasses authentication and must only be used locally.",
                )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def idp_issuer(self) -> str:
        """Get the identity provider issuer URL."""
        return f"https://{self.idp_domain}/"

    @property
    def idp_jwks_url(self) -> str:
        """Get the identity provider JWKS URL for fetching public keys."""
        return f"https://{self.idp_domain}/.well-known/jwks.json"


def get_connection_string(settings: Settings, context_name: str) -> str:
    """
    Look up the connection string for a context by name (case-insensitive).

    Raises:
        ConfigurationError: If no non-empty connection string is configured.
    """
    lookup = {key.lower(): value for key, value in settings.db_contexts.items()}
    connection_string = lookup.get(context_name.lower())
    if not connection_string:
        raise ConfigurationError(
            f"Connection string for {context_name} not defined in configuration "
            f"(e.g., DB_CONTEXTS__{context_name.upper()})",
        )
    return connection_string


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
