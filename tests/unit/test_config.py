"""
Unit tests for environment-driven configuration.
"""

from datetime import datetime, timedelta, timezone

import pytest

from config import PaymentsConfig, get_config, reset_config

pytestmark = pytest.mark.unit


class TestPaymentsConfig:
    def test_defaults(self, monkeypatch):
        for name in (
            "PAYMENTS_STATUS_API_URL",
            "PAYMENTS_STATUS_API_TIMEOUT",
            "PAYMENTS_UTC_OFFSET_HOURS",
            "PAYMENTS_WEBHOOK_LOG",
            "CORS_ORIGINS",
        ):
            monkeypatch.delenv(name, raising=False)

        config = PaymentsConfig.from_env()

        assert config.status_api_timeout == 10.0
        assert config.reference_utc_offset_hours == -3
        assert config.cors_origins == ["*"]
        assert config.webhook_log_enabled is True
        assert config.remote_status_enabled is False

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PAYMENTS_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PAYMENTS_STATUS_API_URL", " https://status.example/{transaction_id} ")
        monkeypatch.setenv("PAYMENTS_STATUS_API_TIMEOUT", "2.5")
        monkeypatch.setenv("PAYMENTS_UTC_OFFSET_HOURS", "0")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("PAYMENTS_WEBHOOK_LOG", "off")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = PaymentsConfig.from_env()

        assert config.data_dir == str(tmp_path)
        assert config.status_api_url == "https://status.example/{transaction_id}"
        assert config.remote_status_enabled is True
        assert config.status_api_timeout == 2.5
        assert config.reference_utc_offset_hours == 0
        assert config.cors_origins == ["https://a.example", "https://b.example"]
        assert config.webhook_log_enabled is False
        assert config.log_level == "DEBUG"

    def test_invalid_numbers_fall_back(self, monkeypatch):
        monkeypatch.setenv("PAYMENTS_STATUS_API_TIMEOUT", "soon")
        monkeypatch.setenv("PORT", "eighty")

        config = PaymentsConfig.from_env()

        assert config.status_api_timeout == 10.0
        assert config.port == 8000

    def test_reference_tz_is_fixed_offset(self):
        tz = PaymentsConfig(reference_utc_offset_hours=-3).reference_tz
        winter = datetime(2026, 1, 15, 15, 0, tzinfo=timezone.utc).astimezone(tz)
        summer = datetime(2026, 7, 15, 15, 0, tzinfo=timezone.utc).astimezone(tz)
        assert winter.utcoffset() == summer.utcoffset() == timedelta(hours=-3)

    def test_get_config_is_cached(self):
        reset_config()
        try:
            assert get_config() is get_config()
        finally:
            reset_config()
