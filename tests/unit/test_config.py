"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": '{"kty": "EC"}',
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "PORT": "9000",
            "RETURN_WINDOW_DAYS": "14",
            "ORDER_WRITE_MAX_ATTEMPTS": "5",
            "CARRIER_WEBHOOK_SECRET": "whsec",
            "CARRIER_API_TIMEOUT_SECONDS": "4.5",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings(_env_file=None)

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.port == 9000
            assert settings.return_window_days == 14
            assert settings.order_write_max_attempts == 5
            assert settings.carrier_webhook_secret == "whsec"
            assert settings.carrier_api_timeout_seconds == 4.5

    def test_lifecycle_defaults(self) -> None:
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.return_window_days == 7
            assert settings.order_write_max_attempts == 3
            assert settings.admin_role == "admin"
            assert settings.carrier_webhook_secret == ""
            assert settings.max_webhook_body_size > settings.max_request_body_size
            assert settings.email_enabled is False

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, http://example.com , http://test.com",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings(_env_file=None)

            assert settings.cors_origins_list == [
                "http://localhost:3000",
                "http://example.com",
                "http://test.com",
            ]

    def test_settings_missing_required(self) -> None:
        """Test that missing Supabase settings raise ValidationError."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    @pytest.mark.parametrize(
        ("name", "value"),
        [("ORDER_WRITE_MAX_ATTEMPTS", "0"), ("RETURN_WINDOW_DAYS", "-1"), ("CARRIER_API_TIMEOUT_SECONDS", "0")],
    )
    def test_settings_rejects_out_of_range(self, name: str, value: str) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, name: value}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_is_production(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "production"}, clear=True):
            assert Settings(_env_file=None).is_production is True


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_instance(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()
