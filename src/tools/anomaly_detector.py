"""
Anomaly Detection Engine

Flags periods whose sales deviate from the moving average of the preceding
periods by more than a granularity-specific percentage.

Flow: raw daily observations -> aggregated buckets (weekly/monthly) ->
scanned against the trailing window -> normal or anomalous.
"""
import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Sequence, Tuple

from src.core.error_taxonomy import InvalidParameterError
from src.core.period_calendar import Granularity, parse_date, period_key
from src.tools.numeric import mean, stddev

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnomalyPolicy:
    """Trailing window length and relative deviation threshold."""
    window: int
    threshold: float


# Fixed design table: coarser buckets are smoother, so the threshold tightens
ANOMALY_POLICIES: Dict[Granularity, AnomalyPolicy] = {
    Granularity.DAILY: AnomalyPolicy(window=30, threshold=0.5),
    Granularity.WEEKLY: AnomalyPolicy(window=4, threshold=0.4),
    Granularity.MONTHLY: AnomalyPolicy(window=3, threshold=0.3),
}

DIRECTION_INCREASE = "increase"
DIRECTION_DECREASE = "decrease"


@dataclass(frozen=True)
class AnomalyRecord:
    """One anomalous period."""
    period_key: str
    actual_value: float
    expected_value: float  # moving average of the trailing window
    deviation: float  # |actual - expected|
    z_score: float
    direction: str
    severity: str
    product_id: str = ""
    product_name: str = ""

    @property
    def display_name(self) -> str:
        return self.product_name or self.product_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_key": self.period_key,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "actual_value": self.actual_value,
            "expected_value": self.expected_value,
            "deviation": self.deviation,
            "z_score": self.z_score,
            "direction": self.direction,
            "severity": self.severity,
        }


def classify_severity(abs_z: float) -> str:
    """Severity band for |z|."""
    if abs_z > 4.0:
        return "critical"
    if abs_z > 3.5:
        return "high"
    if abs_z > 3.0:
        return "medium"
    return "low"


def aggregate_for_anomaly_detection(
    values: Sequence[float],
    dates: Sequence,
    granularity: Granularity,
) -> Tuple[List[float], List[str]]:
    """
    Sum values per bucket key, keeping buckets in first-appearance order.

    Daily granularity keys each observation by its own date.
    """
    totals: Dict[str, float] = {}
    for raw_date, value in zip(dates, values):
        key = period_key(parse_date(raw_date), granularity)
        totals[key] = totals.get(key, 0.0) + float(value)
    return list(totals.values()), list(totals.keys())


def detect_anomalies(
    values: Sequence[float],
    dates: Sequence,
    product_id: str = "",
    product_name: str = "",
    granularity="weekly",
) -> List[AnomalyRecord]:
    """
    Moving-average anomaly scan.

    Args:
        values: Daily (or pre-bucketed, for daily granularity) sales values
        dates: Matching dates
        product_id: Product identifier copied onto each record
        product_name: Display name copied onto each record
        granularity: "daily", "weekly" (default) or "monthly"

    Returns:
        AnomalyRecords in period order; empty when there are fewer buckets
        than the trailing window
    """
    if len(values) != len(dates):
        raise InvalidParameterError(
            f"values and dates differ in length ({len(values)} != {len(dates)})"
        )
    granularity = Granularity.parse(granularity)
    policy = ANOMALY_POLICIES[granularity]
    display_name = product_name or product_id

    if granularity == Granularity.DAILY:
        series = [float(v) for v in values]
        keys = [parse_date(d).isoformat() for d in dates]
    else:
        series, keys = aggregate_for_anomaly_detection(values, dates, granularity)
        logger.debug(f"[{display_name}] aggregated {len(values)} points into {len(series)} {granularity.value} buckets")

    if len(series) < policy.window:
        logger.info(
            f"[{display_name}] Not enough {granularity.value} buckets for anomaly detection "
            f"({len(series)} < {policy.window})"
        )
        return []

    anomalies: List[AnomalyRecord] = []
    for i in range(policy.window, len(series)):
        window = series[i - policy.window:i]
        moving_average = mean(window)
        current = series[i]
        deviation = current - moving_average

        if moving_average > 0 and abs(deviation) > moving_average * policy.threshold:
            window_std = stddev(window)
            z_score = deviation / window_std if window_std > 0 else 0.0
            anomalies.append(AnomalyRecord(
                period_key=keys[i],
                actual_value=current,
                expected_value=moving_average,
                deviation=abs(deviation),
                z_score=z_score,
                direction=DIRECTION_INCREASE if deviation > 0 else DIRECTION_DECREASE,
                severity=classify_severity(abs(z_score)),
                product_id=product_id,
                product_name=product_name,
            ))

    logger.info(f"[{display_name}] Detected {len(anomalies)} anomalies ({granularity.value})")
    return anomalies
