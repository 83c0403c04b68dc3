"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List


class NivalusConfig(BaseSettings):
    """Nivalus Bank service configuration"""

    # Database configuration
    database_url: str = "sqlite:///nivalus.db"  # or memory:// for throwaway runs

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 6001
    cors_origins: List[str] = ["*"]

    # Token configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    token_expiry_days: int = 7

    # Session configuration
    session_cookie_name: str = "nivalus_session"
    session_max_age_days: int = 7
    session_cookie_secure: bool = False

    # Credential rules
    password_min_length: int = 6
    pin_max_attempts: int = 5
    pin_lockout_minutes: int = 15

    # Logging configuration
    log_level: str = "INFO"

    # Default admin bootstrap
    bootstrap_admin: bool = True
    default_admin_username: str = "admin"
    default_admin_password: str = "admin123"
    default_admin_pin: str = "0000"
    default_admin_email: str = "admin@nivalusbank.com"

    class Config:
        env_prefix = "NIVALUS_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = NivalusConfig()


def get_config() -> NivalusConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> NivalusConfig:
    """Reload configuration from environment"""
    global config
    config = NivalusConfig()
    return config
