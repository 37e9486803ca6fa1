from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./localsource.db"
    project_name: str = "LocalSource Connect API"
    api_v1_prefix: str = "/api/v1"

    # Supabase authentication configuration
    # SUPABASE_URL: Full Supabase project URL (e.g., https://xxx.supabase.co)
    #   Used to derive JWKS URL and issuer for JWT verification
    supabase_url: str = "http://localhost:54321"

    # SUPABASE_JWT_AUDIENCE: JWT audience claim to validate (default: "authenticated")
    supabase_jwt_audience: str = "authenticated"

    # Debug flag: logs every SQL statement
    debug: bool = Field(default=False, alias="DEBUG")

    # Outbound mail relay (optional). When unset, notifications are never emailed.
    mail_relay_url: str | None = None
    mail_from: str = "notifications@localsource.ca"
    mail_timeout_seconds: float = 10.0

    # Idempotent reads (room lookup, history, notification fetch) retry with exponential backoff
    store_retry_attempts: int = 3
    store_retry_backoff_seconds: float = 0.2
    # Room provisioning after an accept is retried this many times before ProvisioningFailedError
    provisioning_retry_attempts: int = 3

    # Number of notification rows loaded for the feed baseline
    notification_feed_limit: int = 50

    @property
    def supabase_jwks_url(self) -> str:
        """Derive JWKS URL from Supabase URL."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"

    @property
    def supabase_issuer(self) -> str:
        """Derive issuer from Supabase URL."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid"
    )


settings = Settings()
