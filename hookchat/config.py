"""Configuration management using pydantic-settings."""

from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseModel):
    """A selectable workflow agent."""

    id: str = Field(description="Agent identifier")
    name: str = Field(description="Display name")
    webhook_url: str = Field(description="Workflow endpoint, absolute or relative to base_url")
    icon: str = Field(default="database", description="UI icon name")
    description: str = Field(default="Default agent", description="Short description")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HOOKCHAT_",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=7790, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # Webhook Configuration
    default_webhook_url: Optional[str] = Field(default=None, description="Fallback workflow endpoint")
    base_url: Optional[str] = Field(default=None, description="Base URL for relative endpoints such as /internal/...")
    dispatch_timeout: float = Field(default=180.0, gt=0, description="Dispatch deadline in seconds")
    history_limit: int = Field(default=50, ge=0, description="Max history messages sent with each dispatch")
    agents: List[AgentSettings] = Field(default_factory=list, description="Selectable agents (JSON list)")

    # Polling Configuration
    poll_interval: float = Field(default=2.0, gt=0, description="Seconds between conversation re-fetches")
    poll_max_attempts: int = Field(default=30, ge=1, description="Max re-fetches before giving up")
    poll_max_consecutive_failures: int = Field(default=3, ge=0, description="Fetch failures absorbed in a row")

    # Attachment Configuration
    max_attachments: int = Field(default=10, ge=1, description="Max attachments per conversation")
    attachments_dir: str = Field(default="./data/attachments", description="Where uploaded files are stored")

    # Database Configuration
    database_path: str = Field(default="./data/hookchat.db", description="DuckDB database file")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[str] = Field(default="./logs/app.log", description="Log file path")


# Global settings instance
settings = Settings()
