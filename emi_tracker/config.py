"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class EmiTrackerConfig(BaseSettings):
    """EMI tracker configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///emi_tracker.db"  # Default SQLite
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    default_currency: str = "INR"
    default_tag: str = "Personal"
    split_tolerance: str = "0.01"  # Allowed drift of split totals around 100%
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "EMI_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = EmiTrackerConfig()


def get_config() -> EmiTrackerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EmiTrackerConfig:
    """Reload configuration from environment"""
    global config
    config = EmiTrackerConfig()
    return config
