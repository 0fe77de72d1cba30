"""Tests for configuration module."""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from auroraboot_client.config import (
    CLOSE_NORMAL,
    Settings,
    get_settings,
    print_settings_json,
)


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.base_url == "http://localhost:8080"
        assert settings.log_level == "INFO"
        assert settings.grace_period == 2.0
        assert settings.clean_close_codes == [CLOSE_NORMAL]
        assert settings.max_reconnects == 3
        assert settings.list_limit == 50
        assert settings.request_timeout > 0
        assert settings.connect_timeout > 0

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "AURORABOOT_BASE_URL": "https://builds.example.com",
                "AURORABOOT_LOG_LEVEL": "DEBUG",
                "AURORABOOT_GRACE_PERIOD": "5.5",
                "AURORABOOT_MAX_RECONNECTS": "0",
            },
        ):
            settings = Settings()
            assert settings.base_url == "https://builds.example.com"
            assert settings.log_level == "DEBUG"
            assert settings.grace_period == 5.5
            assert settings.max_reconnects == 0

    def test_clean_close_codes_from_env(self) -> None:
        """Clean close codes should be read as a JSON list."""
        with patch.dict(os.environ, {"AURORABOOT_CLEAN_CLOSE_CODES": "[1000, 4000]"}):
            settings = Settings()
            assert settings.clean_close_codes == [1000, 4000]

    def test_base_url_trailing_slash_stripped(self) -> None:
        """Trailing slashes should be removed from base_url."""
        settings = Settings(base_url="http://localhost:8080/")
        assert settings.base_url == "http://localhost:8080"

    def test_base_url_path_prefix_kept(self) -> None:
        """A base path behind a reverse proxy should be preserved."""
        settings = Settings(base_url="https://example.com/auroraboot/")
        assert settings.base_url == "https://example.com/auroraboot"

    def test_base_url_requires_http_scheme(self) -> None:
        """Non-http base URLs should be rejected."""
        with pytest.raises(ValidationError):
            Settings(base_url="ftp://example.com")

    def test_negative_grace_period_rejected(self) -> None:
        """Grace period must not be negative."""
        with pytest.raises(ValidationError):
            Settings(grace_period=-1)

    def test_zero_grace_period_allowed(self) -> None:
        """A zero grace period ends suspect streams on the next loop turn."""
        settings = Settings(grace_period=0)
        assert settings.grace_period == 0

    def test_list_limit_bounds(self) -> None:
        """List limit should respect the server maximum."""
        with pytest.raises(ValidationError):
            Settings(list_limit=0)
        with pytest.raises(ValidationError):
            Settings(list_limit=101)

    def test_invalid_log_level_rejected(self) -> None:
        """Unknown log levels should be rejected."""
        with pytest.raises(ValidationError):
            Settings(log_level="VERBOSE")


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        settings = get_settings()
        assert isinstance(settings, Settings)

    def test_get_settings_reads_env(self) -> None:
        """get_settings should reflect the environment at call time."""
        with patch.dict(os.environ, {"AURORABOOT_LIST_LIMIT": "10"}):
            assert get_settings().list_limit == 10


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json_valid(self) -> None:
        """print_settings_json should return valid JSON."""
        settings = Settings(base_url="http://auroraboot.test")
        output = print_settings_json(settings)

        data = json.loads(output)
        assert data["base_url"] == "http://auroraboot.test"
        assert data["clean_close_codes"] == [1000]
        assert "grace_period" in data
        assert "max_reconnects" in data

    def test_print_settings_json_default(self) -> None:
        """print_settings_json should work without arguments."""
        data = json.loads(print_settings_json())
        assert "base_url" in data
