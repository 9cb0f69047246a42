"""
Demand Forecaster

Short-horizon demand forecasts for a single product from its daily sales
history, plus a temperature-driven point prediction.

Forecast model (per future day h = 1..H):
    baseline   = overall mean * weekday multiplier
    + slope * (seasonal temperature for the month - mean observed temperature)
      when the temperature regression explains enough variance (R² > 0.1)
    + daily trend * h
The period interval is predicted_total ± 1.96 * std * sqrt(H).

Follows Accuracy-First Framework:
- All calculations are deterministic
- Every forecast lists the factors that went into it
"""
import math
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Dict, Any, Optional, Sequence

import pandas as pd

from src.core.error_taxonomy import (
    DegenerateInputError,
    InsufficientDataError,
    InvalidParameterError,
)
from src.core.period_calendar import WEEKDAY_LABELS, seasonal_temperature, weekday_label
from src.tools.numeric import mean, median, stddev
from src.tools.periodic_analyzer import SalesDataPoint
from src.tools.regression import RegressionModel, linear_regression

logger = logging.getLogger(__name__)

MIN_FORECAST_HISTORY = 14
MIN_PREDICTION_HISTORY = 10
MIN_TEMPERATURE_POINTS = 10
MIN_TEMPERATURE_R_SQUARED = 0.1
MIN_SEASONALITY_HISTORY = 30
SEASONALITY_THRESHOLD_PCT = 20.0
TREND_STABLE_BAND = 0.5
DEFAULT_CONFIDENCE = 0.5
INTERVAL_Z = 1.96

FORECAST_HORIZONS: Dict[str, int] = {
    "week": 7,
    "2weeks": 14,
    "month": 30,
}

Z_SCORES: Dict[float, float] = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}

SUMMER_MONTHS = (6, 7, 8)
WINTER_MONTHS = (12, 1, 2)


@dataclass
class ForecastPoint:
    """Predicted demand for one future day."""
    date: date
    day_of_week: str
    predicted_value: float
    seasonal_temperature: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "predicted_value": self.predicted_value,
            "seasonal_temperature": self.seasonal_temperature,
        }


@dataclass
class ConfidenceInterval:
    lower: float
    upper: float
    level: float

    def to_dict(self) -> Dict[str, Any]:
        return {"lower": self.lower, "upper": self.upper, "level": self.level}


@dataclass
class ProductStatistics:
    """Descriptive statistics of a product's daily sales history."""
    mean: float
    median: float
    std_dev: float
    minimum: float
    maximum: float
    weekday_average: Dict[str, float] = field(default_factory=dict)
    monthly_average: Dict[int, float] = field(default_factory=dict)
    trend_direction: str = "stable"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean": self.mean,
            "median": self.median,
            "std_dev": self.std_dev,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "weekday_average": dict(self.weekday_average),
            "monthly_average": dict(self.monthly_average),
            "trend_direction": self.trend_direction,
        }


@dataclass
class ProductForecast:
    """Demand forecast for one product over a horizon."""
    product_id: str
    product_name: str
    start_date: date
    end_date: date
    predicted_total: float
    daily_average: float
    interval: ConfidenceInterval
    confidence: float
    daily_breakdown: List[ForecastPoint]
    factors: List[str]
    seasonality: Optional[str]
    recommendations: List[str]
    statistics: Optional[ProductStatistics] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "predicted_total": self.predicted_total,
            "daily_average": self.daily_average,
            "interval": self.interval.to_dict(),
            "confidence": self.confidence,
            "daily_breakdown": [p.to_dict() for p in self.daily_breakdown],
            "factors": list(self.factors),
            "seasonality": self.seasonality,
            "recommendations": list(self.recommendations),
            "statistics": self.statistics.to_dict() if self.statistics else None,
        }


@dataclass
class SalesPrediction:
    """Temperature-driven point prediction."""
    predicted_value: float
    interval: ConfidenceInterval
    confidence: float
    factors: List[str]
    equation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicted_value": self.predicted_value,
            "interval": self.interval.to_dict(),
            "confidence": self.confidence,
            "factors": list(self.factors),
            "equation": self.equation,
        }


# ===================
# HISTORY FEATURES
# ===================

def horizon_days(horizon: str) -> int:
    """Number of days for a named horizon (week, 2weeks, month)."""
    key = (horizon or "week").strip().lower()
    if key not in FORECAST_HORIZONS:
        raise InvalidParameterError(
            f"Unknown forecast horizon '{horizon}'. Expected one of: {list(FORECAST_HORIZONS)}",
            context={"horizon": horizon},
        )
    return FORECAST_HORIZONS[key]


def calculate_trend(data: Sequence[SalesDataPoint]) -> float:
    """
    Per-day change between the first and last thirds of the history.

    (mean of last third - mean of first third) / (n - n // 3)
    """
    n = len(data)
    third = n // 3
    if n < 2 or third == 0:
        return 0.0
    early = mean([p.sales for p in data[:third]])
    late = mean([p.sales for p in data[n - third:]])
    return (late - early) / (n - third)


def calculate_weekday_effect(data: Sequence[SalesDataPoint]) -> Dict[str, float]:
    """Ratio of each weekday's mean to the overall mean (1.0 = average day)."""
    overall = mean([p.sales for p in data])
    if overall == 0:
        return {}
    frame = pd.DataFrame({
        "weekday": [p.day_of_week for p in data],
        "sales": [float(p.sales) for p in data],
    })
    by_day = frame.groupby("weekday")["sales"].mean()
    return {day: float(by_day[day]) / overall for day in WEEKDAY_LABELS if day in by_day.index}


def calculate_product_statistics(data: Sequence[SalesDataPoint]) -> ProductStatistics:
    sales = [float(p.sales) for p in data]
    frame = pd.DataFrame({
        "weekday": [p.day_of_week for p in data],
        "month": [p.date.month for p in data],
        "sales": sales,
    })
    by_day = frame.groupby("weekday")["sales"].mean()
    by_month = frame.groupby("month")["sales"].mean()

    trend = calculate_trend(data)
    if trend > TREND_STABLE_BAND:
        direction = "increasing"
    elif trend < -TREND_STABLE_BAND:
        direction = "decreasing"
    else:
        direction = "stable"

    return ProductStatistics(
        mean=mean(sales),
        median=median(sales),
        std_dev=stddev(sales),
        minimum=min(sales) if sales else 0.0,
        maximum=max(sales) if sales else 0.0,
        weekday_average={day: float(by_day[day]) for day in WEEKDAY_LABELS if day in by_day.index},
        monthly_average={int(m): float(v) for m, v in by_month.items()},
        trend_direction=direction,
    )


def detect_seasonality(data: Sequence[SalesDataPoint]) -> Optional[str]:
    """
    Compare summer (Jun-Aug) and winter (Dec-Feb) demand.

    Uses the average of the monthly means in each season; needs at least
    30 observations and both seasons present.
    """
    if len(data) < MIN_SEASONALITY_HISTORY:
        return None

    frame = pd.DataFrame({
        "month": [p.date.month for p in data],
        "sales": [float(p.sales) for p in data],
    })
    monthly = frame.groupby("month")["sales"].mean()
    summer = monthly[monthly.index.isin(SUMMER_MONTHS)]
    winter = monthly[monthly.index.isin(WINTER_MONTHS)]

    if len(summer) > 0 and len(winter) > 0:
        summer_avg = float(summer.mean())
        winter_avg = float(winter.mean())
        if winter_avg != 0:
            diff = (summer_avg - winter_avg) / winter_avg * 100.0
            if diff > SEASONALITY_THRESHOLD_PCT:
                return f"Higher summer demand (+{diff:.0f}% vs winter)"
            if diff < -SEASONALITY_THRESHOLD_PCT:
                return f"Higher winter demand (+{-diff:.0f}% vs summer)"

    return "No clear seasonality detected"


def _temperature_regression(data: Sequence[SalesDataPoint]):
    """(model, mean temperature) or (None, 0.0)."""
    pairs = [(p.temperature, p.sales) for p in data if p.temperature is not None]
    if len(pairs) < MIN_TEMPERATURE_POINTS:
        return None, 0.0
    temperatures = [t for t, _ in pairs]
    try:
        model = linear_regression(temperatures, [s for _, s in pairs])
    except DegenerateInputError as e:
        logger.info(f"Temperature regression skipped: {e}")
        return None, 0.0
    return model, mean(temperatures)


# ===================
# FORECASTS
# ===================

def _forecast_recommendations(daily_average: float, stats: ProductStatistics) -> List[str]:
    recommendations: List[str] = []

    if daily_average > stats.mean * 1.2:
        recommendations.append(
            f"Forecast demand is above average; secure enough stock "
            f"(forecast {daily_average:.0f}/day, average {stats.mean:.0f}/day)"
        )
    elif daily_average < stats.mean * 0.8:
        recommendations.append("Forecast demand is below average; watch for excess inventory")

    if stats.weekday_average:
        best_day = max(stats.weekday_average, key=stats.weekday_average.get)
        recommendations.append(f"{best_day} tends to have the highest demand")

    if stats.trend_direction == "increasing":
        recommendations.append("Demand is trending up; consider strengthening supply")
    elif stats.trend_direction == "decreasing":
        recommendations.append("Demand is trending down; review marketing measures")

    return recommendations


def _forecast_factors(
    regression: Optional[RegressionModel],
    weekday_effect: Dict[str, float],
    stats: ProductStatistics,
) -> List[str]:
    factors = [
        f"Historical sales (average {stats.mean:.0f}/day)",
        f"Trend direction: {stats.trend_direction}",
    ]
    if weekday_effect:
        factors.append("Day-of-week demand variation")
    if regression is not None and regression.r_squared > MIN_TEMPERATURE_R_SQUARED:
        factors.append(f"Temperature correlation (R² = {regression.r_squared:.2f})")
    factors.append("Seasonal pattern analysis")
    return factors


def forecast_product_demand(
    product_id: str,
    product_name: str,
    history: Sequence[SalesDataPoint],
    horizon: str = "week",
) -> ProductForecast:
    """
    Forecast daily demand for the days after the last observation.

    Args:
        product_id: Product identifier
        product_name: Display name
        history: Daily sales; sorted into a copy by date
        horizon: "week" (7 days), "2weeks" (14) or "month" (30)

    Raises:
        InsufficientDataError: fewer than 14 observations
        InvalidParameterError: unknown horizon
    """
    if len(history) < MIN_FORECAST_HISTORY:
        raise InsufficientDataError(
            f"Forecast needs at least {MIN_FORECAST_HISTORY} days of history (got {len(history)})",
            required=MIN_FORECAST_HISTORY,
            actual=len(history),
        )
    days = horizon_days(horizon)
    data = sorted(history, key=lambda p: p.date)

    stats = calculate_product_statistics(data)
    weekday_effect = calculate_weekday_effect(data)
    regression, mean_temperature = _temperature_regression(data)
    use_temperature = regression is not None and regression.r_squared > MIN_TEMPERATURE_R_SQUARED
    daily_trend = calculate_trend(data)

    last_date = data[-1].date
    breakdown: List[ForecastPoint] = []
    total = 0.0
    for offset in range(1, days + 1):
        forecast_date = last_date + timedelta(days=offset)
        day = weekday_label(forecast_date)
        season_temp = seasonal_temperature(forecast_date.month)

        value = stats.mean * weekday_effect.get(day, 1.0)
        if use_temperature:
            value += regression.slope * (season_temp - mean_temperature)
        value += daily_trend * offset

        breakdown.append(ForecastPoint(
            date=forecast_date,
            day_of_week=day,
            predicted_value=max(0.0, value),
            seasonal_temperature=season_temp,
        ))
        total += value

    margin = INTERVAL_Z * stats.std_dev * math.sqrt(days)
    daily_average = max(0.0, total / days)
    forecast = ProductForecast(
        product_id=product_id,
        product_name=product_name,
        start_date=breakdown[0].date,
        end_date=breakdown[-1].date,
        predicted_total=max(0.0, total),
        daily_average=daily_average,
        interval=ConfidenceInterval(
            lower=max(0.0, total - margin),
            upper=max(0.0, total + margin),
            level=0.95,
        ),
        confidence=regression.r_squared if regression is not None else DEFAULT_CONFIDENCE,
        daily_breakdown=breakdown,
        factors=_forecast_factors(regression, weekday_effect, stats),
        seasonality=detect_seasonality(data),
        recommendations=_forecast_recommendations(daily_average, stats),
        statistics=stats,
    )
    logger.info(
        f"[{product_name or product_id}] {days}-day forecast: total={forecast.predicted_total:.1f}, "
        f"temperature_model={'yes' if use_temperature else 'no'}"
    )
    return forecast


def predict_future_sales(
    sales: Sequence[float],
    temperatures: Sequence[float],
    future_temperature: float,
    confidence_level: float = 0.95,
) -> SalesPrediction:
    """
    Predict sales at a given temperature from a sales-on-temperature regression.

    The interval is prediction ± z * population std of the residuals, with z
    looked up for 0.90 / 0.95 / 0.99 (any other level uses 0.95).

    Raises:
        InvalidParameterError: sales and temperatures differ in length
        InsufficientDataError: fewer than 10 observations
    """
    if len(sales) != len(temperatures):
        raise InvalidParameterError(
            f"sales and temperatures differ in length ({len(sales)} != {len(temperatures)})"
        )
    if len(sales) < MIN_PREDICTION_HISTORY:
        raise InsufficientDataError(
            f"Prediction needs at least {MIN_PREDICTION_HISTORY} observations (got {len(sales)})",
            required=MIN_PREDICTION_HISTORY,
            actual=len(sales),
        )

    model = linear_regression(temperatures, sales)
    predicted = model.predict(future_temperature)
    residuals = [s - model.predict(t) for t, s in zip(temperatures, sales)]
    residual_std = stddev(residuals)

    level = round(confidence_level, 2) if confidence_level else 0.95
    if level not in Z_SCORES:
        logger.debug(f"No z value for confidence level {confidence_level}; using 0.95")
        level = 0.95
    margin = Z_SCORES[level] * residual_std

    factors = [
        f"Regression prediction at {future_temperature:.1f}°C",
        f"Learned from {len(sales)} historical observations",
        f"Coefficient of determination R² = {model.r_squared:.3f}",
    ]
    if model.r_squared > 0.5:
        factors.append("Temperature and sales are strongly related; prediction accuracy is high")
    elif model.r_squared > 0.3:
        factors.append("Temperature and sales are related, but other factors also matter")
    else:
        factors.append("Factors other than temperature likely drive sales")

    return SalesPrediction(
        predicted_value=predicted,
        interval=ConfidenceInterval(lower=predicted - margin, upper=predicted + margin, level=level),
        confidence=model.r_squared,
        factors=factors,
        equation=f"y = {model.slope:.2f}x + {model.intercept:.2f}",
    )
