"""
Tests for environment-driven configuration.
"""
import logging

from config.settings import AppConfig, configure_logging, get_config


class TestAppConfig:
    def test_defaults(self, monkeypatch):
        for name in (
            "CORRELATION_WEATHER_MAX_LAG_DAYS",
            "CORRELATION_ECONOMIC_SYMBOLS",
            "CORRELATION_TOP_N",
            "ANOMALY_DEFAULT_GRANULARITY",
            "FORECAST_DEFAULT_HORIZON",
        ):
            monkeypatch.delenv(name, raising=False)

        config = get_config()

        assert config.correlation.weather_max_lag_days == 14
        assert config.correlation.economic_max_lag_days == 30
        assert config.correlation.economic_symbols == ["NIKKEI", "USDJPY", "WTI"]
        assert config.correlation.top_n == 3
        assert config.anomaly.default_granularity == "weekly"
        assert config.forecast.default_horizon == "week"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CORRELATION_ECONOMIC_SYMBOLS", "nikkei, sp500 ,")
        monkeypatch.setenv("CORRELATION_WEATHER_MAX_LAG_DAYS", "7")
        monkeypatch.setenv("FORECAST_DEFAULT_HORIZON", "month")

        config = AppConfig()

        assert config.correlation.economic_symbols == ["NIKKEI", "SP500"]
        assert config.correlation.weather_max_lag_days == 7
        assert config.forecast.default_horizon == "month"


class TestConfigureLogging:
    def test_level_from_environment(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
        monkeypatch.setenv("LOG_LEVEL", "debug")

        configure_logging()
        configure_logging("warning")

        assert calls[0]["level"] == logging.DEBUG
        assert calls[1]["level"] == logging.WARNING
