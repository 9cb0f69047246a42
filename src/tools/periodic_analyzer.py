"""
Periodic Sales Analyzer

Summarizes a product's daily sales into daily, weekly or monthly periods and
classifies the resulting trend.

Key Concepts:
- Weekly periods are counted from the Monday of the caller's start date
  (period 1 is the week containing start_date), not from ISO weeks
- Monthly periods are calendar months in chronological order
- Daily periods are one summary per observation
- Period-over-period change is against the previous period's total and is
  0 when that total is not positive
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Dict, Any, Optional, Sequence

import numpy as np
import pandas as pd

from src.core.error_taxonomy import InsufficientDataError
from src.core.period_calendar import (
    DateLike,
    Granularity,
    anchored_week_index,
    month_key,
    parse_date,
    weekday_label,
)

logger = logging.getLogger(__name__)

TREND_UPWARD = "upward"
TREND_DOWNWARD = "downward"
TREND_FLAT = "flat"
TREND_INSUFFICIENT = "insufficient data"

SEASONALITY_LATER_HALF = "later-half increase"
SEASONALITY_EARLIER_HALF = "earlier-half concentration"
SEASONALITY_NONE = "no clear seasonal pattern"

# Average period-over-period change (%) beyond which a trend is directional
TREND_GROWTH_THRESHOLD = 2.0
# Half-over-half change (%) beyond which seasonality is reported
SEASONALITY_THRESHOLD = 15.0
MIN_PERIODS_FOR_SEASONALITY = 4


@dataclass
class SalesDataPoint:
    """One day of sales for a product."""
    date: date
    sales: float
    temperature: Optional[float] = None

    def __post_init__(self):
        self.date = parse_date(self.date)

    @property
    def day_of_week(self) -> str:
        return weekday_label(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "sales": self.sales,
            "temperature": self.temperature,
            "day_of_week": self.day_of_week,
        }


@dataclass
class PeriodSummary:
    """Statistics for one period bucket."""
    period_index: int  # 1-based
    start_date: date
    end_date: date
    total: float
    average: float
    minimum: float
    maximum: float
    sample_count: int
    change_pct: float
    std_dev: float
    average_temperature: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_index": self.period_index,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total": self.total,
            "average": self.average,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "sample_count": self.sample_count,
            "change_pct": self.change_pct,
            "std_dev": self.std_dev,
            "average_temperature": self.average_temperature,
        }


@dataclass
class PeriodOverallStats:
    """Statistics across period totals."""
    average_total: float = 0.0
    median_total: float = 0.0
    std_dev_total: float = 0.0
    best_period: int = 0
    worst_period: int = 0
    growth_rate: float = 0.0  # first -> last period, percent
    volatility: float = 0.0  # coefficient of variation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_total": self.average_total,
            "median_total": self.median_total,
            "std_dev_total": self.std_dev_total,
            "best_period": self.best_period,
            "worst_period": self.worst_period,
            "growth_rate": self.growth_rate,
            "volatility": self.volatility,
        }


@dataclass
class TrendAnalysis:
    """Direction, strength and seasonality of the period totals."""
    direction: str
    strength: float = 0.0
    seasonality: Optional[str] = None
    peak_period: int = 0
    low_period: int = 0
    average_growth: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction,
            "strength": self.strength,
            "seasonality": self.seasonality,
            "peak_period": self.peak_period,
            "low_period": self.low_period,
            "average_growth": self.average_growth,
        }


@dataclass
class PeriodicAnalysis:
    """Full periodic analysis of one product."""
    product_id: str
    product_name: str
    start_date: Optional[date]
    end_date: Optional[date]
    granularity: Granularity
    summaries: List[PeriodSummary]
    overall: PeriodOverallStats
    trends: TrendAnalysis
    recommendations: List[str] = field(default_factory=list)

    @property
    def total_periods(self) -> int:
        return len(self.summaries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "granularity": self.granularity.value,
            "total_periods": self.total_periods,
            "summaries": [s.to_dict() for s in self.summaries],
            "overall": self.overall.to_dict(),
            "trends": self.trends.to_dict(),
            "recommendations": list(self.recommendations),
        }


# ===================
# SUMMARIZATION
# ===================

def _to_frame(data: Sequence[SalesDataPoint]) -> pd.DataFrame:
    """Chronologically sorted frame; the caller's list is left untouched."""
    frame = pd.DataFrame({
        "date": [p.date for p in data],
        "sales": [float(p.sales) for p in data],
        "temperature": [np.nan if p.temperature is None else float(p.temperature) for p in data],
    })
    return frame.sort_values("date", kind="mergesort").reset_index(drop=True)


def _change_pct(current: float, previous: Optional[float]) -> float:
    if previous is None or previous <= 0:
        return 0.0
    return (current - previous) / previous * 100.0


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _summaries_from_groups(frame: pd.DataFrame, bucket_column: str, indices: List[int]) -> List[PeriodSummary]:
    grouped = frame.groupby(bucket_column, sort=True).agg(
        start_date=("date", "min"),
        end_date=("date", "max"),
        total=("sales", "sum"),
        average=("sales", "mean"),
        minimum=("sales", "min"),
        maximum=("sales", "max"),
        sample_count=("sales", "size"),
        std_dev=("sales", lambda s: float(np.std(s.to_numpy()))),
        average_temperature=("temperature", "mean"),
    )

    summaries: List[PeriodSummary] = []
    previous_total = None
    for period_index, (_, row) in zip(indices, grouped.iterrows()):
        total = float(row["total"])
        summaries.append(PeriodSummary(
            period_index=int(period_index),
            start_date=row["start_date"],
            end_date=row["end_date"],
            total=total,
            average=float(row["average"]),
            minimum=float(row["minimum"]),
            maximum=float(row["maximum"]),
            sample_count=int(row["sample_count"]),
            change_pct=_change_pct(total, previous_total),
            std_dev=float(row["std_dev"]),
            average_temperature=_optional_float(row["average_temperature"]),
        ))
        previous_total = total
    return summaries


def summarize_daily(data: Sequence[SalesDataPoint]) -> List[PeriodSummary]:
    """One summary per observation, in date order."""
    summaries: List[PeriodSummary] = []
    previous = None
    for i, point in enumerate(sorted(data, key=lambda p: p.date)):
        sales = float(point.sales)
        summaries.append(PeriodSummary(
            period_index=i + 1,
            start_date=point.date,
            end_date=point.date,
            total=sales,
            average=sales,
            minimum=sales,
            maximum=sales,
            sample_count=1,
            change_pct=_change_pct(sales, previous),
            std_dev=0.0,
            average_temperature=point.temperature,
        ))
        previous = sales
    return summaries


def summarize_weekly(data: Sequence[SalesDataPoint], start_date: Optional[DateLike] = None) -> List[PeriodSummary]:
    """
    Weekly summaries counted from the Monday of start_date.

    Weeks with no observations are skipped; period_index keeps the anchored
    week number so gaps stay visible. Observations before the anchor week
    fall into week 1.
    """
    if not data:
        return []
    frame = _to_frame(data)
    anchor = parse_date(start_date) if start_date is not None else frame["date"].iloc[0]
    frame["bucket"] = [anchored_week_index(d, anchor) for d in frame["date"]]
    indices = [week + 1 for week in sorted(frame["bucket"].unique())]
    return _summaries_from_groups(frame, "bucket", indices)


def summarize_monthly(data: Sequence[SalesDataPoint]) -> List[PeriodSummary]:
    """Calendar-month summaries in chronological order."""
    if not data:
        return []
    frame = _to_frame(data)
    frame["bucket"] = [month_key(d) for d in frame["date"]]
    indices = list(range(1, frame["bucket"].nunique() + 1))
    return _summaries_from_groups(frame, "bucket", indices)


def summarize_periods(
    data: Sequence[SalesDataPoint],
    granularity=Granularity.WEEKLY,
    start_date: Optional[DateLike] = None,
) -> List[PeriodSummary]:
    granularity = Granularity.parse(granularity)
    if granularity == Granularity.DAILY:
        return summarize_daily(data)
    if granularity == Granularity.MONTHLY:
        return summarize_monthly(data)
    return summarize_weekly(data, start_date)


# ===================
# STATISTICS & TRENDS
# ===================

def calculate_overall_stats(summaries: Sequence[PeriodSummary]) -> PeriodOverallStats:
    """Average, median, spread, extremes and growth of the period totals."""
    if not summaries:
        return PeriodOverallStats()

    totals = pd.Series([s.total for s in summaries], dtype=float)
    average = float(totals.mean())
    std_dev = float(totals.std(ddof=0))

    best = summaries[0]
    worst = summaries[0]
    for s in summaries[1:]:
        if s.total > best.total:
            best = s
        if s.total < worst.total:
            worst = s

    growth_rate = 0.0
    if len(summaries) >= 2 and summaries[0].total > 0:
        growth_rate = (summaries[-1].total - summaries[0].total) / summaries[0].total * 100.0

    return PeriodOverallStats(
        average_total=average,
        median_total=float(totals.median()),
        std_dev_total=std_dev,
        best_period=best.period_index,
        worst_period=worst.period_index,
        growth_rate=growth_rate,
        volatility=std_dev / average if average > 0 else 0.0,
    )


def _classify_seasonality(totals: List[float]) -> Optional[str]:
    if len(totals) < MIN_PERIODS_FOR_SEASONALITY:
        return None
    mid = len(totals) // 2
    first_half = sum(totals[:mid]) / mid
    second_half = sum(totals[mid:]) / (len(totals) - mid)
    if first_half == 0:
        return SEASONALITY_NONE
    diff = (second_half - first_half) / first_half * 100.0
    if diff > SEASONALITY_THRESHOLD:
        return SEASONALITY_LATER_HALF
    if diff < -SEASONALITY_THRESHOLD:
        return SEASONALITY_EARLIER_HALF
    return SEASONALITY_NONE


def analyze_trends(summaries: Sequence[PeriodSummary]) -> TrendAnalysis:
    """
    Classify direction from the average period-over-period change.

    > +2 % upward, < -2 % downward, else flat. Directional strength is
    min(|g| / 10, 1); flat strength is 1 - min(|g| / 2, 1).
    """
    if len(summaries) < 2:
        return TrendAnalysis(direction=TREND_INSUFFICIENT)

    average_growth = sum(s.change_pct for s in summaries[1:]) / (len(summaries) - 1)

    if average_growth > TREND_GROWTH_THRESHOLD:
        direction = TREND_UPWARD
        strength = min(average_growth / 10.0, 1.0)
    elif average_growth < -TREND_GROWTH_THRESHOLD:
        direction = TREND_DOWNWARD
        strength = min(abs(average_growth) / 10.0, 1.0)
    else:
        direction = TREND_FLAT
        strength = 1.0 - min(abs(average_growth) / 2.0, 1.0)

    peak = summaries[0]
    low = summaries[0]
    for s in summaries[1:]:
        if s.total > peak.total:
            peak = s
        if s.total < low.total:
            low = s

    return TrendAnalysis(
        direction=direction,
        strength=strength,
        seasonality=_classify_seasonality([s.total for s in summaries]),
        peak_period=peak.period_index,
        low_period=low.period_index,
        average_growth=average_growth,
    )


def generate_period_recommendations(
    overall: PeriodOverallStats,
    trends: TrendAnalysis,
    granularity: Granularity = Granularity.WEEKLY,
) -> List[str]:
    unit = {"daily": "day", "weekly": "week", "monthly": "month"}[granularity.value]
    recommendations: List[str] = []

    if trends.direction == TREND_UPWARD:
        recommendations.append(
            f"📈 Upward trend (average +{trends.average_growth:.1f}%/{unit}): secure production capacity for rising demand"
        )
    elif trends.direction == TREND_DOWNWARD:
        recommendations.append(
            f"📉 Downward trend (average {trends.average_growth:.1f}%/{unit}): review inventory levels and strengthen marketing"
        )
    elif trends.direction == TREND_FLAT:
        recommendations.append("📊 Stable demand pattern: keep the current production plan")

    if overall.volatility > 0.3:
        recommendations.append(
            f"⚠️ High demand variability (coefficient of variation {overall.volatility:.2f}): hold safety stock"
        )
    elif 0 < overall.volatility < 0.15:
        recommendations.append("✅ Demand is stable: just-in-time production is an option")

    if overall.best_period > 0 and overall.worst_period > 0:
        recommendations.append(
            f"📅 {unit.capitalize()} {overall.best_period} was the highest and {unit} {overall.worst_period} "
            f"the lowest: use the pattern to tune the production schedule"
        )

    if overall.growth_rate > 20:
        recommendations.append(
            f"🚀 {overall.growth_rate:.1f}% growth over the period: scale up supply"
        )
    elif overall.growth_rate < -20:
        recommendations.append(
            f"📊 {overall.growth_rate:.1f}% decline over the period: plan demand recovery measures"
        )

    if trends.seasonality and trends.seasonality != SEASONALITY_NONE:
        recommendations.append(
            f"🌤️ {trends.seasonality.capitalize()}: factor seasonality into inventory management"
        )

    return recommendations


def analyze_periodic_sales(
    product_id: str,
    product_name: str,
    data: Sequence[SalesDataPoint],
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    granularity=Granularity.WEEKLY,
) -> PeriodicAnalysis:
    """
    Summarize, score and interpret a product's sales history.

    Raises:
        InsufficientDataError: data is empty
    """
    if not data:
        raise InsufficientDataError(f"No sales data for product '{product_id}'", required=1, actual=0)

    granularity = Granularity.parse(granularity)
    start = parse_date(start_date) if start_date is not None else None
    end = parse_date(end_date) if end_date is not None else None

    summaries = summarize_periods(data, granularity, start)
    overall = calculate_overall_stats(summaries)
    trends = analyze_trends(summaries)
    recommendations = generate_period_recommendations(overall, trends, granularity)

    logger.info(
        f"[{product_name or product_id}] {len(summaries)} {granularity.value} periods, "
        f"trend={trends.direction}"
    )
    return PeriodicAnalysis(
        product_id=product_id,
        product_name=product_name,
        start_date=start,
        end_date=end,
        granularity=granularity,
        summaries=summaries,
        overall=overall,
        trends=trends,
        recommendations=recommendations,
    )
