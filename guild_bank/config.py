"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings


class BankConfig(BaseSettings):
    """Guild bank configuration"""
    
    # Snapshot persistence
    data_file: str = "bank-data.json"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    # Read view limits
    history_default_count: int = 5
    history_max_count: int = 20
    leaderboard_default_count: int = 10
    leaderboard_max_count: int = 10
    
    # Naming rules
    loan_id_max_length: int = 64
    
    class Config:
        env_prefix = "GUILD_BANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
