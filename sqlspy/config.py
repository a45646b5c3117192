"""
Configuration management using Pydantic Settings.
Reads from environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Tracing settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Logging Configuration
    log_level: str = Field(default="DEBUG", alias="SQLSPY_LOG_LEVEL")
    call_log_level: str = Field(default="DEBUG", alias="SQLSPY_CALL_LOG_LEVEL")

    # Logging-context tag keys (empty string disables the tag)
    object_tag_key: str = Field(default="spy_id", alias="SQLSPY_OBJECT_TAG_KEY")
    duration_tag_key: str = Field(default="spy_duration", alias="SQLSPY_DURATION_TAG_KEY")

    # Trap Configuration
    trap_enabled: bool = Field(default=True, alias="SQLSPY_TRAP_ENABLED")
    trap_config_path: str = Field(
        default="sqlspy-config.properties", alias="SQLSPY_TRAP_CONFIG_PATH"
    )
    trap_reload_interval_ms: int = Field(default=30000, alias="SQLSPY_TRAP_RELOAD_INTERVAL_MS")


# Global settings instance
settings = Settings()
