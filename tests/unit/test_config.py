"""Unit tests for settings validation."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from grant_core import main
from grant_core.core.config import Settings, clear_settings_cache, get_settings
from grant_core.core.logging_utils import configure_logging


class TestSettings:
    """Tests for configuration."""

    def test_defaults(self):
        """Token lifetimes and rate limit tiers."""
        settings = Settings()

        assert settings.oauth_code_ttl_seconds == 600
        assert settings.oauth_access_token_ttl_seconds == 3600
        assert settings.oauth_refresh_token_ttl_seconds == 7200
        assert settings.rate_limit_window_seconds == 3600
        assert settings.rate_limit_development == 1000
        assert settings.rate_limit_production == 10000

    def test_settings_are_immutable(self):
        """Settings cannot be changed after load."""
        settings = Settings()

        with pytest.raises(ValidationError):
            settings.jwt_algorithm = "HS512"

    def test_rejects_test_secret_in_production(self):
        """Test secrets never reach production."""
        with pytest.raises(ValidationError):
            Settings(api_env="production", jwt_secret="test-" + "x" * 40)

    def test_rejects_asymmetric_algorithm(self):
        """Only HMAC algorithms are configured."""
        with pytest.raises(ValidationError):
            Settings(jwt_algorithm="RS256")

    def test_restricted_paths_must_be_absolute(self):
        """Restricted prefixes are absolute paths."""
        with pytest.raises(ValidationError):
            Settings(oauth_restricted_path_prefixes=["api/v1/developer"])

    def test_environment_variables(self, monkeypatch):
        """Values are read from the environment."""
        monkeypatch.setenv("OAUTH_ACCESS_TOKEN_TTL_SECONDS", "900")
        clear_settings_cache()
        try:
            assert get_settings().oauth_access_token_ttl_seconds == 900
        finally:
            clear_settings_cache()


class TestTokenLifetimeWarning:
    """Tests for the startup lifetime check."""

    def test_default_lifetimes_warn(self, caplog):
        """A two hour refresh token barely outlives a one hour access token."""
        with caplog.at_level("WARNING"):
            assert Settings().warn_on_token_lifetimes()

        assert "Refresh token lifetime" in caplog.text

    def test_long_refresh_lifetime_does_not_warn(self, caplog):
        """Thirty day refresh tokens are fine."""
        settings = Settings(oauth_refresh_token_ttl_seconds=30 * 24 * 3600)

        with caplog.at_level("WARNING"):
            assert not settings.warn_on_token_lifetimes()

        assert caplog.text == ""


class TestLogLevel:
    """Tests for applying the configured root log level."""

    @pytest.fixture
    def root_logger(self):
        """Root logger, restored to its original level afterwards."""
        root = logging.getLogger()
        original = root.level
        yield root
        root.setLevel(original)

    def test_explicit_level_applies_after_first_call(self, root_logger):
        """Later calls with a level still change the root level."""
        configure_logging()
        configure_logging(level=logging.ERROR)

        assert root_logger.level == logging.ERROR

    async def test_lifespan_uses_settings_level(self, monkeypatch, root_logger):
        """LOG_LEVEL takes effect when the application starts."""
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        clear_settings_cache()
        backend = MagicMock(connect=AsyncMock(), disconnect=AsyncMock())
        monkeypatch.setattr(main, "get_database", lambda: backend)
        monkeypatch.setattr(main, "get_cache", lambda: backend)

        try:
            async with main.lifespan(main.app):
                assert root_logger.level == logging.WARNING
        finally:
            clear_settings_cache()
