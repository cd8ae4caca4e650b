import os
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Job Queue Configuration
    job_poll_interval: float = 1.0
    job_wake_on_enqueue: bool = False
    job_shutdown_timeout: float = 5.0
    job_store: Literal["memory", "sqlite"] = "memory"

    # Review Processing Configuration
    review_processing_delay: float = 0.5
    review_marker: str = " [Verified Review]"

    # Storage Configuration
    data_dir: str = "./data"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 4000

    # Logging Configuration
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def sqlite_path(self) -> str:
        """Return path to SQLite database."""
        return os.path.join(self.data_dir, "bookreview.db")


# Global settings instance
settings = Settings()
