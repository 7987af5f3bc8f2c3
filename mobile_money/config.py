"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional


class MobileMoneyConfig(BaseSettings):
    """Mobile money ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="MOBILE_MONEY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: Literal["memory", "sqlite"] = "sqlite"
    database_path: str = "mobile_money.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    cors_origins: str = "http://localhost:5173"  # Comma separated

    # Caller identity (tokens are issued by the login service)
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules
    minimum_transfer_amount: Decimal = Decimal("50")
    transfer_fee_threshold: Decimal = Decimal("100")
    transfer_flat_fee: Decimal = Decimal("5")
    cash_out_fee_rate: Decimal = Decimal("0.015")
    agent_onboarding_credit: Decimal = Decimal("10000")
    user_signup_bonus: Decimal = Decimal("40")
    transaction_history_limit: int = 10

    # Fee disposal: "burn" debits fees without crediting anyone,
    # "platform" credits them to platform_fee_account_id
    fee_disposal: Literal["burn", "platform"] = "burn"
    platform_fee_account_id: str = "PLATFORM_FEES"

    # Concurrency
    lock_timeout_seconds: float = 5.0


# Global configuration instance
config = MobileMoneyConfig()


def get_config() -> MobileMoneyConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MobileMoneyConfig:
    """Reload configuration from environment"""
    global config
    config = MobileMoneyConfig()
    return config
