"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./marketplace.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # API
    api_title: str = Field(default="Marketplace Billing API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    # Control panel authentication
    panel_auth_secret: str = Field(
        default="change-me", description="Shared secret for signed panel identity headers"
    )
    auth_max_age_seconds: int = Field(
        default=300, description="Maximum age of a signed identity header in seconds"
    )

    # Credits
    credit_grant_min: Decimal = Field(default=Decimal("0.01"), description="Smallest grant")
    credit_grant_max: Decimal = Field(default=Decimal("10000"), description="Largest grant")
    page_size: int = Field(default=50, description="Rows per page for admin listings")
    statistics_window_days: int = Field(
        default=30, description="Trailing window for ledger statistics"
    )

    # Split billing
    invitation_ttl_days: int = Field(default=7, description="Days until an invitation expires")
    invitation_share_percentage: Decimal = Field(
        default=Decimal("50.00"), description="Share offered to an invitee"
    )

    # Mail
    smtp_host: str = Field(default="", description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_user: str = Field(default="", description="SMTP login")
    smtp_password: str = Field(default="", description="SMTP password")
    mail_from: str = Field(default="billing@localhost", description="Sender address")
    mail_from_name: str = Field(default="Marketplace Billing", description="Sender name")
    panel_url: str = Field(
        default="http://localhost:8000", description="Base URL used in invitation links"
    )

    # Locale (fixes currency, e.g. en_US -> USD)
    locale: str = Field(default="en_US", description="Babel locale for money formatting")


# Global settings instance
settings = Settings()
