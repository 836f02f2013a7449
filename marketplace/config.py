"""Configuration management using Pydantic settings."""
from decimal import Decimal
from typing import List, Optional

from pydantic import AnyHttpUrl, EmailStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    database_url: str = Field(..., description="Async SQLAlchemy database URL")
    db_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # JWT settings
    jwt_secret_key: str = Field(..., description="Secret key for access tokens")
    jwt_refresh_secret_key: str = Field(..., description="Secret key for refresh tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=15, description="Access token expiry in minutes")
    refresh_token_expire_days: int = Field(default=7, description="Refresh token expiry in days")

    # Cookie session settings
    session_secret_key: str = Field(..., description="Secret used to sign the session cookie")
    session_cookie_name: str = Field(default="marketplace_session")
    session_max_age_seconds: int = Field(default=14 * 24 * 60 * 60)
    session_https_only: bool = Field(default=False)

    # OAuth settings
    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")

    # Stripe settings
    stripe_secret_key: str = Field(..., description="Stripe API secret key")
    stripe_webhook_secret: str = Field(..., description="Stripe webhook signing secret")
    stripe_currency: str = Field(default="usd")
    platform_fee_percent: Decimal = Field(
        default=Decimal("10"), ge=0, le=100, description="Platform share of each course sale"
    )

    # Security settings
    bcrypt_rounds: int = Field(default=12, description="Bcrypt hashing rounds")
    rate_limit_requests: int = Field(default=5, description="Rate limit requests per minute")
    rate_limit_enabled: bool = Field(default=True)
    email_verification_expire_hours: int = Field(default=24)
    password_reset_expire_hours: int = Field(default=1)

    # CORS settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins"
    )

    # App settings
    app_name: str = Field(default="Course Marketplace API", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Frontend base URL for building verification and reset links
    frontend_base_url: AnyHttpUrl = Field(
        default="http://localhost:3000", description="Base URL of the frontend app"
    )

    # SMTP / email settings; delivery is skipped when smtp_host is unset
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: Optional[str] = Field(default=None, description="SMTP username/login")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password or app password")
    smtp_from_email: EmailStr = Field(default="no-reply@example.com", description="From email address")
    smtp_from_name: str = Field(default="Course Marketplace", description="From name in emails")


settings = Settings()
