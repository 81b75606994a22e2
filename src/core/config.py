"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="order-lifecycle-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")
    admin_role: str = Field(default="admin", description="JWT role claim value granting admin access")

    # Order lifecycle
    return_window_days: int = Field(default=7, ge=0, description="Days after delivery during which a return may be requested")
    order_write_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts to commit an order mutation before giving up on concurrent writers",
    )

    # Shipping carrier
    carrier_api_base_url: str = Field(
        default="https://apiv2.shiprocket.in/v1/external",
        description="Base URL of the shipping carrier REST API",
    )
    carrier_api_timeout_seconds: float = Field(default=15.0, gt=0, description="Timeout for each outbound carrier API call")
    carrier_webhook_secret: str = Field(default="", description="Shared secret for carrier webhook authentication")
    carrier_tracking_url_template: str = Field(
        default="https://www.shiprocket.in/shipment-tracking/{awb_code}",
        description="Public tracking URL template, formatted with the assigned AWB code",
    )

    # Request limits
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")
    max_webhook_body_size: int = Field(default=10_485_760, description="Maximum carrier webhook body size in bytes")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Orders <orders@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for email links",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def email_enabled(self) -> bool:
        """Check if transactional email is configured."""
        return bool(self.resend_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
