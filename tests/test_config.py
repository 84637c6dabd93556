"""
Unit tests for the configuration module.

Tests configuration loading, validation, and environment variable handling.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import Settings, LogLevel, DEFAULT_CORS_ORIGINS


class TestSettings:
    """Test suite for Settings configuration class."""

    def test_default_values(self):
        """Test that default configuration values are set correctly."""
        settings = Settings(_env_file=None)

        assert settings.upload_dir == Path("uploads")
        assert settings.subtitle_dir == Path("subtitles")
        assert settings.output_dir == Path("edited")
        assert settings.assemblyai_base_url == "https://api.assemblyai.com/v2"
        assert settings.poll_interval_seconds == 5.0
        assert settings.max_poll_attempts == 60
        assert settings.max_file_size_mb == 500
        assert settings.stream_chunk_size == 64 * 1024
        assert settings.api_port == 5000
        assert settings.api_host == "0.0.0.0"
        assert settings.log_level == LogLevel.INFO
        assert settings.cors_origins == DEFAULT_CORS_ORIGINS
        assert settings.log_json is True
        assert settings.log_file is None

    def test_environment_variable_override(self, monkeypatch, tmp_path):
        """Test that environment variables override default values."""
        monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "in"))
        monkeypatch.setenv("ASSEMBLYAI_API_KEY", "secret-key")
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "2.5")
        monkeypatch.setenv("MAX_POLL_ATTEMPTS", "10")
        monkeypatch.setenv("API_PORT", "9000")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("CORS_ORIGINS", '["https://example.com"]')
        monkeypatch.setenv("LOG_JSON", "false")
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "api.log"))

        settings = Settings(_env_file=None)

        assert settings.upload_dir == tmp_path / "in"
        assert settings.assemblyai_api_key == "secret-key"
        assert settings.poll_interval_seconds == 2.5
        assert settings.max_poll_attempts == 10
        assert settings.api_port == 9000
        assert settings.log_level == LogLevel.DEBUG
        assert settings.cors_origins == ["https://example.com"]
        assert settings.log_json is False
        assert settings.log_file == str(tmp_path / "api.log")

    def test_base_url_trailing_slash_removed(self, monkeypatch):
        """Test that a trailing slash on the base URL is stripped."""
        monkeypatch.setenv("ASSEMBLYAI_BASE_URL", "https://transcribe.local/v2/")

        settings = Settings(_env_file=None)

        assert settings.assemblyai_base_url == "https://transcribe.local/v2"

    def test_invalid_poll_attempts_rejected(self, monkeypatch):
        """Test that a zero attempt ceiling is rejected."""
        monkeypatch.setenv("MAX_POLL_ATTEMPTS", "0")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_invalid_port_rejected(self, monkeypatch):
        """Test that an out-of-range port is rejected."""
        monkeypatch.setenv("API_PORT", "70000")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_get_max_file_size_bytes(self):
        """Test conversion of file size from MB to bytes."""
        settings = Settings(_env_file=None)

        assert settings.get_max_file_size_bytes() == 500 * 1024 * 1024

    def test_ensure_directories_creates_all(self, tmp_path):
        """Test that the three storage directories are created."""
        settings = Settings(
            _env_file=None,
            upload_dir=tmp_path / "uploads",
            subtitle_dir=tmp_path / "subtitles",
            output_dir=tmp_path / "edited",
        )

        assert settings.directory_status() == {
            "uploads": False, "subtitles": False, "edited": False
        }

        settings.ensure_directories()

        assert settings.directory_status() == {
            "uploads": True, "subtitles": True, "edited": True
        }

    def test_ensure_directories_is_idempotent(self, tmp_path):
        """Test that existing directories are left alone."""
        settings = Settings(
            _env_file=None,
            upload_dir=tmp_path / "uploads",
            subtitle_dir=tmp_path / "subtitles",
            output_dir=tmp_path / "edited",
        )
        settings.ensure_directories()
        (tmp_path / "edited" / "keep.mp4").write_bytes(b"data")

        settings.ensure_directories()

        assert (tmp_path / "edited" / "keep.mp4").read_bytes() == b"data"

    def test_display_masks_api_key(self):
        """Test that display never prints the API key."""
        settings = Settings(_env_file=None, assemblyai_api_key="super-secret")
        display_str = settings.display()

        assert "Subtitle Burner API Configuration" in display_str
        assert "Max Poll Attempts:" in display_str
        assert "super-secret" not in display_str
        assert "AssemblyAI API Key: set" in display_str

    def test_log_level_enum_values(self):
        """Test that LogLevel enum has all expected values."""
        assert LogLevel.DEBUG.value == "DEBUG"
        assert LogLevel.INFO.value == "INFO"
        assert LogLevel.WARNING.value == "WARNING"
        assert LogLevel.ERROR.value == "ERROR"
        assert LogLevel.CRITICAL.value == "CRITICAL"
