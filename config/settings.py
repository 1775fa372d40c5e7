"""
Configuration settings for the ProjectHub workflow engine.
All deployment-specific values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "ProjectHub Workflow"
    debug: bool = Field(default=False)
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")

    # Database (PostgreSQL in production, SQLite for local runs and tests)
    database_url: str = Field(default="")
    database_echo: bool = Field(default=False)
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    # Display timezone for human-readable messages
    timezone: str = Field(default="UTC")

    # Audit log
    audit_log_default_limit: int = Field(default=30)

    # Notifications: database, webhook or none
    notification_backend: str = Field(default="database")
    notification_webhook_url: str = Field(default="")
    notification_webhook_timeout: float = Field(default=10.0)

    # Await audit/notification side effects inline instead of in background tasks
    await_side_effects: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
