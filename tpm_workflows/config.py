"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class TPMConfig(BaseSettings):
    """Workflow engine configuration"""

    # Database configuration
    database_url: str = "sqlite:///tpm_workflows.db"  # memory:// for in-memory
    use_sqlite: bool = True  # False keeps everything in memory

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_debug: bool = False

    # Security configuration
    jwt_secret: str = "change-me-in-production-use-a-long-random-key"
    jwt_algorithm: str = "HS256"

    # Tenancy
    default_tenant_id: str = "default"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Pagination
    default_page_size: int = 50
    max_page_size: int = 500

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "TPM_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = TPMConfig()


def get_config() -> TPMConfig:
    """Get global configuration instance"""
    return config
