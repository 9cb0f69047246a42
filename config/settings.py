"""
Configuration settings for the Sales Statistics Engine.

Key Design Principle: tunable integration parameters come from environment
variables, never hardcoded in the engines. Fixed statistical design tables
(interpretation bands, anomaly policy, severity bands) live next to the code
that uses them and are deliberately NOT configurable here.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import List


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip().upper() for item in raw.split(",") if item.strip()]


@dataclass
class CorrelationConfig:
    """Lag scan and result-reduction settings for the aggregate analyzer."""
    # Weather effects are short-lived, so the weather scan is narrower
    weather_max_lag_days: int = field(
        default_factory=lambda: int(os.getenv("CORRELATION_WEATHER_MAX_LAG_DAYS", "14"))
    )
    economic_max_lag_days: int = field(
        default_factory=lambda: int(os.getenv("CORRELATION_ECONOMIC_MAX_LAG_DAYS", "30"))
    )
    economic_symbols: List[str] = field(
        default_factory=lambda: _env_list("CORRELATION_ECONOMIC_SYMBOLS", "NIKKEI,USDJPY,WTI")
    )
    top_n: int = field(
        default_factory=lambda: int(os.getenv("CORRELATION_TOP_N", "3"))
    )
    significance_level: float = field(
        default_factory=lambda: float(os.getenv("CORRELATION_SIGNIFICANCE_LEVEL", "0.05"))
    )
    # A lag result is kept if significant OR at least this strong
    min_abs_coefficient: float = field(
        default_factory=lambda: float(os.getenv("CORRELATION_MIN_ABS_COEFFICIENT", "0.3"))
    )


@dataclass
class AnomalyConfig:
    """Anomaly detection defaults."""
    default_granularity: str = field(
        default_factory=lambda: os.getenv("ANOMALY_DEFAULT_GRANULARITY", "weekly")
    )


@dataclass
class ForecastConfig:
    """Forecast defaults."""
    default_horizon: str = field(
        default_factory=lambda: os.getenv("FORECAST_DEFAULT_HORIZON", "week")
    )


@dataclass
class AppConfig:
    """Main application configuration."""
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def get_config() -> AppConfig:
    """Factory function to get application configuration."""
    return AppConfig()


def configure_logging(level: str = None) -> None:
    """Configure root logging for hosts embedding the engine."""
    level = level or get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
