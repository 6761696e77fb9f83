"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    api_prefix: str = "/api"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://storefront:storefront_dev_password@db:5432/storefront"

    # Authentication
    jwt_secret: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60

    # Email (empty smtp_host logs messages instead of sending them)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_from_email: str = "no-reply@storefront.local"
    smtp_from_name: str = "Storefront"

    # One-time passcodes
    otp_length: int = 6
    otp_ttl_minutes: int = 5
    otp_max_attempts: int = 5
    otp_max_resends: int = 5

    # Order pricing
    currency: str = "INR"
    tax_rate: Decimal = Decimal("0.05")
    shipping_flat_fee: Decimal = Decimal("49.00")
    express_shipping_fee: Decimal = Decimal("149.00")
    free_shipping_threshold: Decimal = Decimal("999.00")

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
