"""surveycam configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the surveycam upload agent.

    Settings are loaded from environment variables with the SURVEYCAM_ prefix.
    For example, SURVEYCAM_SERVER_URL=https://studio.example.com sets server_url.
    """

    model_config = SettingsConfigDict(
        env_prefix="SURVEYCAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    server_url: str = "http://localhost:3000"
    api_token: str | None = None
    request_timeout: float = 30.0  # seconds per HTTP request

    # Queue storage
    data_dir: Path = Path("~/.local/share/surveycam")
    queue_db_name: str = "queue.db"
    queue_storage_key: str = "upload_queue"

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Ensure server URL has a scheme and no trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        """Ensure request timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be greater than 0")
        return v

    @field_validator("queue_storage_key")
    @classmethod
    def validate_queue_storage_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("queue_storage_key must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def queue_db_path(self) -> Path:
        """Return the SQLite file holding the persisted upload queue."""
        return self.data_path / self.queue_db_name

    @cached_property
    def log_path(self) -> Path | None:
        """Return expanded log file path, if file logging is enabled."""
        return self.log_file.expanduser() if self.log_file else None
