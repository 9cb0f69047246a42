"""
Correlation & Significance Engine

Pearson correlation with t-test significance, plus lag scanning between two
dated series. Lag convention: x(t) is paired with y(t + lag), so a positive
lag means y lags x and a negative lag means y leads x.

Key Features:
- Full-range lag sweep sorted by |r|
- Sliding-window lag sweep with Benjamini-Hochberg correction per window
- Top-N reduction for downstream enrichment (signal-reduction policy)
"""
import math
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Dict, Any, Sequence, Tuple

from src.core.error_taxonomy import (
    DegenerateInputError,
    InsufficientDataError,
    InvalidParameterError,
)
from src.core.period_calendar import DateLike, parse_date
from src.tools.numeric import benjamini_hochberg, student_t_cdf

logger = logging.getLogger(__name__)

MIN_ALIGNED_POINTS = 5
MIN_WINDOW_DAYS = 7
SIGNIFICANCE_LEVEL = 0.05
DEFAULT_TOP_N = 3


@dataclass(frozen=True)
class CorrelationResult:
    """Single correlation finding."""
    label: str
    coefficient: float
    p_value: float
    sample_size: int
    interpretation: str
    lag_days: int = 0

    @property
    def is_significant(self) -> bool:
        return self.p_value < SIGNIFICANCE_LEVEL

    def with_label(self, label: str) -> "CorrelationResult":
        """Copy of this result under a new label."""
        return CorrelationResult(
            label=label,
            coefficient=self.coefficient,
            p_value=self.p_value,
            sample_size=self.sample_size,
            interpretation=self.interpretation,
            lag_days=self.lag_days,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "coefficient": self.coefficient,
            "p_value": self.p_value,
            "sample_size": self.sample_size,
            "interpretation": self.interpretation,
            "lag_days": self.lag_days,
        }


@dataclass(frozen=True)
class WindowedLagResult:
    """Best lag found inside one sliding window."""
    window_start: date
    window_end: date
    best_lag: int
    coefficient: float
    p_value: float
    adjusted_p_value: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "best_lag": self.best_lag,
            "coefficient": self.coefficient,
            "p_value": self.p_value,
            "adjusted_p_value": self.adjusted_p_value,
            "sample_size": self.sample_size,
        }


# ===================
# CORE STATISTICS
# ===================

def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation coefficient.

    Raises:
        DegenerateInputError: empty input, length mismatch, or zero variance
    """
    if len(x) != len(y) or len(x) == 0:
        raise DegenerateInputError(
            f"Series must be non-empty and equal length (got {len(x)} and {len(y)})"
        )

    n = len(x)
    mean_x = sum(x) / n
    mean_y = sum(y) / n
    sxy = 0.0
    sxx = 0.0
    syy = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        sxy += dx * dy
        sxx += dx * dx
        syy += dy * dy

    denominator = math.sqrt(sxx * syy)
    if denominator == 0 or min(x) == max(x) or min(y) == max(y):
        raise DegenerateInputError("Zero variance in at least one series (denominator is 0)")

    r = sxy / denominator
    return min(max(r, -1.0), 1.0)


def p_value(r: float, n: int) -> float:
    """Two-tailed p-value of a correlation r over n pairs (1.0 when n < 3)."""
    if n < 3:
        return 1.0
    one_minus_r2 = 1.0 - r * r
    if one_minus_r2 <= 0:
        return 0.0
    t = r * math.sqrt(n - 2) / math.sqrt(one_minus_r2)
    p = 2.0 * (1.0 - student_t_cdf(abs(t), n - 2))
    return min(max(p, 0.0), 1.0)


def interpret_correlation(r: float, p: float) -> str:
    """Human-readable strength, direction and significance of a correlation."""
    abs_r = abs(r)
    if abs_r >= 0.7:
        strength = "strong"
    elif abs_r >= 0.4:
        strength = "moderate"
    elif abs_r >= 0.2:
        strength = "weak"
    else:
        strength = "negligible"

    direction = "negative" if r < 0 else "positive"
    significance = (
        "statistically significant" if p < SIGNIFICANCE_LEVEL
        else "not statistically significant"
    )
    return f"{strength} {direction} correlation ({significance})"


def lag_label(lag: int) -> str:
    if lag > 0:
        return f"y lags x by +{lag} days"
    if lag < 0:
        return f"y leads x by {-lag} days"
    return "lag=0"


# ===================
# LAG SCANNING
# ===================

def _build_lookup(dates: Sequence[DateLike], values: Sequence[float], name: str) -> Dict[date, float]:
    if len(dates) != len(values):
        raise InvalidParameterError(
            f"{name}: dates and values differ in length ({len(dates)} != {len(values)})"
        )
    lookup: Dict[date, float] = {}
    for raw, value in zip(dates, values):
        d = parse_date(raw)
        if d in lookup:
            raise InvalidParameterError(
                f"{name}: duplicate date {d.isoformat()}; merge duplicates before analysis",
                context={"date": d.isoformat()},
            )
        lookup[d] = float(value)
    return lookup


def _align(
    x_dates: Sequence[date],
    x_lookup: Dict[date, float],
    y_lookup: Dict[date, float],
    lag: int,
) -> Tuple[List[float], List[float]]:
    xs: List[float] = []
    ys: List[float] = []
    shift = timedelta(days=lag)
    for d in x_dates:
        shifted = d + shift
        if shifted in y_lookup:
            xs.append(x_lookup[d])
            ys.append(y_lookup[shifted])
    return xs, ys


def _correlate_at_lag(
    x_dates: Sequence[date],
    x_lookup: Dict[date, float],
    y_lookup: Dict[date, float],
    lag: int,
):
    """(r, p, n) for one lag, or None when the lag is unusable."""
    xs, ys = _align(x_dates, x_lookup, y_lookup, lag)
    if len(xs) < MIN_ALIGNED_POINTS:
        return None
    try:
        r = pearson(xs, ys)
    except DegenerateInputError:
        logger.debug(f"Skipping lag {lag}: zero variance in aligned subset")
        return None
    return r, p_value(r, len(xs)), len(xs)


def lagged_correlation(
    x_dates: Sequence[DateLike],
    x_values: Sequence[float],
    y_dates: Sequence[DateLike],
    y_values: Sequence[float],
    max_lag_days: int,
) -> List[CorrelationResult]:
    """
    Correlate x(t) with y(t + lag) for every lag in [-max_lag_days, +max_lag_days].

    Lags with fewer than 5 aligned points are skipped.

    Returns:
        CorrelationResults sorted by descending |coefficient|
    """
    if max_lag_days < 0:
        raise InvalidParameterError(f"max_lag_days must be >= 0, got {max_lag_days}")
    x_lookup = _build_lookup(x_dates, x_values, "x")
    y_lookup = _build_lookup(y_dates, y_values, "y")
    if len(x_lookup) < MIN_ALIGNED_POINTS or len(y_lookup) < MIN_ALIGNED_POINTS:
        raise InsufficientDataError(
            f"Need at least {MIN_ALIGNED_POINTS} points in each series "
            f"(x={len(x_lookup)}, y={len(y_lookup)})",
            required=MIN_ALIGNED_POINTS,
            actual=min(len(x_lookup), len(y_lookup)),
        )

    ordered_x = sorted(x_lookup)
    results: List[CorrelationResult] = []
    for lag in range(-max_lag_days, max_lag_days + 1):
        outcome = _correlate_at_lag(ordered_x, x_lookup, y_lookup, lag)
        if outcome is None:
            continue
        r, p, n = outcome
        results.append(CorrelationResult(
            label=lag_label(lag),
            coefficient=r,
            p_value=p,
            sample_size=n,
            interpretation=interpret_correlation(r, p),
            lag_days=lag,
        ))

    results.sort(key=lambda res: abs(res.coefficient), reverse=True)
    logger.debug(f"Lag scan ±{max_lag_days}d produced {len(results)} usable lags")
    return results


def windowed_lagged_correlation(
    x_dates: Sequence[DateLike],
    x_values: Sequence[float],
    y_dates: Sequence[DateLike],
    y_values: Sequence[float],
    max_lag_days: int,
    window_days: int,
    step_days: int,
) -> List[WindowedLagResult]:
    """
    Run the lag sweep over sliding windows of the x timeline.

    Each window [start, start + window_days - 1] reports only its best lag by
    |r|, with the raw p-value and the BH-adjusted p-value across the lags
    evaluated in that window.

    The next window starts at the first x-date >= start + step_days, so with
    gaps in the x dates (weekends, holidays) the effective step is longer
    than step_days.
    """
    if window_days < MIN_WINDOW_DAYS:
        raise InvalidParameterError(
            f"window_days must be >= {MIN_WINDOW_DAYS}, got {window_days}",
            context={"window_days": window_days},
        )
    if step_days < 1:
        raise InvalidParameterError(f"step_days must be >= 1, got {step_days}")
    if max_lag_days < 0:
        raise InvalidParameterError(f"max_lag_days must be >= 0, got {max_lag_days}")

    x_lookup = _build_lookup(x_dates, x_values, "x")
    y_lookup = _build_lookup(y_dates, y_values, "y")
    times = sorted(x_lookup)
    if not times:
        raise InsufficientDataError("x series is empty", required=MIN_ALIGNED_POINTS, actual=0)

    results: List[WindowedLagResult] = []
    start_idx = 0
    while True:
        win_start = times[start_idx]
        win_end = win_start + timedelta(days=window_days - 1)
        window_dates = [t for t in times if win_start <= t <= win_end]
        if len(window_dates) < MIN_ALIGNED_POINTS:
            break

        evaluated = []
        for lag in range(-max_lag_days, max_lag_days + 1):
            outcome = _correlate_at_lag(window_dates, x_lookup, y_lookup, lag)
            if outcome is not None:
                evaluated.append((lag,) + outcome)

        if evaluated:
            adjusted = benjamini_hochberg([item[2] for item in evaluated])
            best = 0
            for i in range(1, len(evaluated)):
                if abs(evaluated[i][1]) > abs(evaluated[best][1]):
                    best = i
            lag, r, p, n = evaluated[best]
            results.append(WindowedLagResult(
                window_start=win_start,
                window_end=win_end,
                best_lag=lag,
                coefficient=r,
                p_value=p,
                adjusted_p_value=adjusted[best],
                sample_size=n,
            ))

        next_start = win_start + timedelta(days=step_days)
        next_idx = next((i for i, t in enumerate(times) if t >= next_start), None)
        if next_idx is None or next_idx == start_idx:
            break
        start_idx = next_idx

    logger.debug(f"Windowed lag scan produced {len(results)} windows")
    return results


def top_correlations(
    results: Sequence[CorrelationResult],
    limit: int = DEFAULT_TOP_N,
) -> List[CorrelationResult]:
    """Keep only the strongest `limit` results by |coefficient|."""
    ranked = sorted(results, key=lambda res: abs(res.coefficient), reverse=True)
    if len(ranked) > limit:
        logger.info(f"Reduced {len(ranked)} correlations to top {limit}")
    return ranked[:limit]
