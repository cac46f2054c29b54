"""
BankEase Settings

All tunables come from BANKEASE_* environment variables (or a .env file).
Money-valued settings are strings so they parse exactly into Decimal.
"""

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class BankEaseConfig(BaseSettings):
    """BankEase backend configuration"""

    # Storage configuration
    database_url: str = "sqlite:///bankease.db"  # memory:// for the in-memory backend

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5001
    cors_origins: List[str] = ["*"]

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24 * 7
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    currency: str = "USD"
    starting_balance: str = "1000.00"
    min_transfer_amount: str = "0.01"
    max_transaction_amount: str = "100000.00"
    description_max_length: int = 200

    # Statement configuration
    recent_transactions_limit: int = 5
    history_page_size: int = 10
    history_max_page_size: int = 100

    # Rate limiting, per client IP over a sliding window
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100  # everything under /api/
    auth_rate_limit_max_requests: int = 10  # /api/auth/ on top of the general limit

    class Config:
        env_prefix = "BANKEASE_"
        env_file = ".env"
        case_sensitive = False

    @property
    def starting_balance_decimal(self) -> Decimal:
        return Decimal(self.starting_balance)

    @property
    def min_transfer_decimal(self) -> Decimal:
        return Decimal(self.min_transfer_amount)

    @property
    def max_transaction_decimal(self) -> Decimal:
        return Decimal(self.max_transaction_amount)


# Global configuration instance
config = BankEaseConfig()


def get_config() -> BankEaseConfig:
    """Get global configuration instance"""
    return config


def reload_config(**overrides) -> BankEaseConfig:
    """Reload configuration from environment, applying explicit overrides"""
    global config
    config = BankEaseConfig(**overrides)
    return config

