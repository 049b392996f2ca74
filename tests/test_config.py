from datetime import datetime, timedelta, timezone

import pytest

from api import create_app
from api.config import (
    ConfigurationError,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_config,
)
from utils.timeutils import as_utc, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("15m", timedelta(minutes=15)),
            ("7d", timedelta(days=7)),
            ("24h", timedelta(hours=24)),
            ("30s", timedelta(seconds=30)),
            ("900", timedelta(seconds=900)),
        ],
    )
    def test_units(self, raw, expected):
        assert parse_duration(raw) == expected

    def test_default_when_empty(self):
        assert parse_duration("", timedelta(days=7)) == timedelta(days=7)
        assert parse_duration(None, timedelta(minutes=1)) == timedelta(minutes=1)

    @pytest.mark.parametrize("raw", ["7w", "abc", "0m", "-5m"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2024, 1, 1, 12, 0, 0)
    assert as_utc(naive) == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None


class TestGetConfig:
    def test_by_name(self):
        assert get_config("prod") is ProductionConfig
        assert get_config("testing") is TestingConfig
        assert get_config("dev") is DevelopmentConfig

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        assert get_config(None) is ProductionConfig


class TestValidateConfig:
    @pytest.fixture
    def config(self):
        return {
            "JWT_ACCESS_SECRET": "a",
            "JWT_REFRESH_SECRET": "b",
            "ACCESS_TOKEN_EXPIRES": "15m",
            "REFRESH_TOKEN_EXPIRES": "7d",
            "ACTIVATION_TOKEN_EXPIRES": "24h",
            "PASSWORD_HASH_TIME_COST": 2,
        }

    def test_valid(self, config):
        validate_config(config)

    def test_missing_secret(self, config):
        config["JWT_REFRESH_SECRET"] = None
        with pytest.raises(ConfigurationError, match="JWT_REFRESH_SECRET"):
            validate_config(config)

    def test_secrets_must_differ(self, config):
        config["JWT_REFRESH_SECRET"] = "a"
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_bad_duration(self, config):
        config["ACCESS_TOKEN_EXPIRES"] = "soon"
        with pytest.raises(ConfigurationError, match="ACCESS_TOKEN_EXPIRES"):
            validate_config(config)

    def test_create_app_fails_fast(self, storage):
        """Missing secrets are fatal at startup, not per request."""
        with pytest.raises(ConfigurationError):
            create_app("testing", storage=storage, config_overrides={"JWT_ACCESS_SECRET": ""})
