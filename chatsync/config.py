"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Shared record store
    record_store_backend: str = Field(default="memory", description="Record store backend: memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    redis_password: str = Field(default="", description="Redis password")
    redis_key_prefix: str = Field(default="chatsync", description="Prefix for record keys and change channels")

    # Collections
    conversations_collection: str = Field(default="chats", description="Collection holding conversation records")
    users_collection: str = Field(default="users", description="Collection holding participant/presence records")
    summaries_collection: str = Field(default="userchats", description="Collection holding per-participant summaries")

    # Blob store
    blob_store_backend: str = Field(default="memory", description="Blob store backend: memory or oss")
    oss_access_key_id: str = Field(default="", description="Alibaba Cloud OSS Access Key ID")
    oss_access_key_secret: str = Field(default="", description="Alibaba Cloud OSS Access Key Secret")
    oss_bucket_name: str = Field(default="", description="OSS bucket name")
    oss_endpoint: str = Field(default="oss-cn-hangzhou.aliyuncs.com", description="OSS endpoint")
    blob_public_base_url: str = Field(default="memory://blobs", description="Base URL for the in-memory blob store")

    # File Upload
    max_upload_size: int = Field(default=10485760, description="Max file upload size in bytes (10MB)")
    preview_size: int = Field(default=300, description="Edge length in pixels of restored image previews")

    # Presence
    presence_heartbeat_seconds: float = Field(default=30.0, description="Interval between online re-assertions")

    # Typing
    typing_debounce_ms: int = Field(default=2000, description="Idle time after the last keystroke before typing is cleared")
    typing_stale_ms: int = Field(default=4000, description="Age after which a typing timestamp is treated as expired")
    typing_skew_ms: int = Field(default=1000, description="Tolerated clock skew for future typing timestamps")
    typing_poll_ms: int = Field(default=1000, description="Interval of the typing staleness poll")

    # Message menu placement
    menu_min_vertical_px: int = Field(default=170, description="Space needed above a message to open the menu above it")
    menu_min_horizontal_px: int = Field(default=210, description="Space needed on the default side of a message menu")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Rate Limiting
    rate_limit_per_minute: int = Field(default=100, description="Send rate limit per minute per client")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("record_store_backend", "blob_store_backend", "log_format")
    @classmethod
    def normalize_choice(cls, v: str) -> str:
        """Normalize backend and format names."""
        return v.strip().lower()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


# Global settings instance
settings = Settings()
