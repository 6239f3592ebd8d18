"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class CooperativeConfig(BaseSettings):
    """Cooperative society service configuration"""

    # Database configuration
    database_url: str = "sqlite:///cooperative.db"
    use_sqlite: bool = True

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Loan rules
    currency: str = "NGN"
    loan_interest_rate: str = "5"  # Flat annual percentage
    allowed_loan_durations: List[int] = [6, 12, 18, 24]
    max_loan_amount: str = "500000"
    guarantor_search_limit: int = 5
    default_after_days: int = 90

    # Fine rules
    fines_enabled: bool = True
    fine_percentage: str = "2"
    grace_period_days: int = 3

    # Member activity thresholds (days)
    at_risk_after_days: int = 7
    recently_inactive_after_days: int = 14
    dormant_after_days: int = 21

    # Notification delivery
    notification_webhook_url: str = ""  # Empty = disabled
    notification_webhook_timeout: float = 5.0

    # Feature flags
    enable_admin_log: bool = True

    class Config:
        env_prefix = "COOP_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CooperativeConfig()


def get_config() -> CooperativeConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CooperativeConfig:
    """Reload configuration from environment"""
    global config
    config = CooperativeConfig()
    return config
