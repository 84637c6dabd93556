"""
Configuration management for the Subtitle Burner API.

This module provides configuration settings for the service, including the
storage directories, the transcription service credentials and the polling
bounds used while waiting for a transcript.

Uses Pydantic Settings for robust environment variable management with
validation and type safety.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "https://austinabu8.github.io",
]


class Settings(BaseSettings):
    """
    Configuration settings for the subtitle burner service.

    All settings can be overridden using environment variables.
    Pydantic Settings provides automatic validation and type conversion.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage directories
    upload_dir: Path = Field(
        default=Path("uploads"),
        description="Directory receiving incoming uploads",
        alias="UPLOAD_DIR"
    )

    subtitle_dir: Path = Field(
        default=Path("subtitles"),
        description="Directory for per-job audio and subtitle artifacts",
        alias="SUBTITLE_DIR"
    )

    output_dir: Path = Field(
        default=Path("edited"),
        description="Directory holding finished subtitled videos",
        alias="OUTPUT_DIR"
    )

    # Transcription service
    assemblyai_api_key: str = Field(
        default="",
        description="AssemblyAI API key",
        alias="ASSEMBLYAI_API_KEY"
    )

    assemblyai_base_url: str = Field(
        default="https://api.assemblyai.com/v2",
        description="AssemblyAI REST API base URL",
        alias="ASSEMBLYAI_BASE_URL"
    )

    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Delay between transcript status checks (in seconds)",
        alias="POLL_INTERVAL_SECONDS"
    )

    max_poll_attempts: int = Field(
        default=60,
        ge=1,
        le=1000,
        description="Maximum number of transcript status checks before timing out",
        alias="MAX_POLL_ATTEMPTS"
    )

    http_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for individual requests to the transcription service",
        alias="HTTP_TIMEOUT_SECONDS"
    )

    # File upload limits
    max_file_size_mb: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Maximum video file size in megabytes",
        alias="MAX_FILE_SIZE_MB"
    )

    # Streaming configuration
    stream_chunk_size: int = Field(
        default=64 * 1024,  # 64 KB
        ge=1024,
        le=10 * 1024 * 1024,
        description="Chunk size used when streaming video files (in bytes)",
        alias="STREAM_CHUNK_SIZE"
    )

    # API configuration
    api_port: int = Field(
        default=5000,
        ge=1,
        le=65535,
        description="Port to expose the API",
        alias="API_PORT"
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="API host address",
        alias="API_HOST"
    )

    cors_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CORS_ORIGINS),
        description="Origins allowed to call the API from a browser",
        alias="CORS_ORIGINS"
    )

    # Logging configuration
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(
        default=True,
        description="Emit JSON log lines instead of plain text",
        alias="LOG_JSON"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional file receiving a copy of the logs",
        alias="LOG_FILE"
    )

    @field_validator("assemblyai_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so request paths can be appended."""
        return v.rstrip("/")

    def get_max_file_size_bytes(self) -> int:
        """Get maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        """Create the upload, subtitle and output directories if absent."""
        for directory in (self.upload_dir, self.subtitle_dir, self.output_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def directory_status(self) -> Dict[str, bool]:
        """Report which storage directories currently exist."""
        return {
            "uploads": self.upload_dir.is_dir(),
            "subtitles": self.subtitle_dir.is_dir(),
            "edited": self.output_dir.is_dir(),
        }

    def display(self) -> str:
        """
        Get a formatted string of all configuration settings.

        The API key is masked.

        Returns:
            Formatted configuration string
        """
        api_key = "set" if self.assemblyai_api_key else "not set"
        return f"""
Subtitle Burner API Configuration:
==================================
Upload Directory: {self.upload_dir}
Subtitle Directory: {self.subtitle_dir}
Output Directory: {self.output_dir}
AssemblyAI Base URL: {self.assemblyai_base_url}
AssemblyAI API Key: {api_key}
Poll Interval: {self.poll_interval_seconds} seconds
Max Poll Attempts: {self.max_poll_attempts}
Max File Size: {self.max_file_size_mb} MB
Stream Chunk Size: {self.stream_chunk_size} bytes
API Host: {self.api_host}
API Port: {self.api_port}
Log Level: {self.log_level.value}
Log Format: {"json" if self.log_json else "text"}
Log File: {self.log_file or "stdout only"}
"""


# Create a global settings instance
# This will be imported and used throughout the application
settings = Settings()
