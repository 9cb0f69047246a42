"""
Numeric Primitives

CRITICAL FRAMEWORK PRINCIPLE: every statistic the engine reports is computed
by deterministic code in this package.

Provides:
- Population mean / standard deviation / median (empty input -> 0)
- Regularized incomplete beta function I_x(a, b) via Lentz's continued fraction
- Student-t CDF and F-distribution survival function built on I_x(a, b)
- Benjamini-Hochberg false-discovery-rate adjustment
"""
import math
import logging
from typing import List, Sequence

logger = logging.getLogger(__name__)

# Continued fraction controls for betacf
BETACF_MAX_ITER = 200
BETACF_EPS = 3e-7
BETACF_FPMIN = 1e-30


# ===================
# DESCRIPTIVE STATISTICS
# ===================

def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return sum(values) / len(values)


def stddev(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    mu = mean(values)
    return math.sqrt(sum((v - mu) ** 2 for v in values) / len(values))


def median(values: Sequence[float]) -> float:
    """Upper median (element n//2 of the sorted copy); 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def first_difference(values: Sequence[float]) -> List[float]:
    """x[t] - x[t-1]; sequences shorter than 2 come back as a copy."""
    if len(values) < 2:
        return list(values)
    return [values[i] - values[i - 1] for i in range(1, len(values))]


# ===================
# SPECIAL FUNCTIONS
# ===================

def _betacf(a: float, b: float, x: float) -> float:
    """Continued fraction for the incomplete beta function (modified Lentz)."""
    qab = a + b
    qap = a + 1.0
    qam = a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < BETACF_FPMIN:
        d = BETACF_FPMIN
    d = 1.0 / d
    h = d

    for m in range(1, BETACF_MAX_ITER + 1):
        m2 = 2 * m
        # Even step
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        if abs(d) < BETACF_FPMIN:
            d = BETACF_FPMIN
        c = 1.0 + aa / c
        if abs(c) < BETACF_FPMIN:
            c = BETACF_FPMIN
        d = 1.0 / d
        h *= d * c

        # Odd step
        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        if abs(d) < BETACF_FPMIN:
            d = BETACF_FPMIN
        c = 1.0 + aa / c
        if abs(c) < BETACF_FPMIN:
            c = BETACF_FPMIN
        d = 1.0 / d
        delta = d * c
        h *= delta

        if abs(delta - 1.0) < BETACF_EPS:
            return h

    logger.debug(f"betacf did not converge in {BETACF_MAX_ITER} iterations (a={a}, b={b}, x={x})")
    return h


def regularized_incomplete_beta(a: float, b: float, x: float) -> float:
    """
    Regularized incomplete beta function I_x(a, b).

    Args:
        a, b: Shape parameters (> 0)
        x: Evaluation point; x <= 0 gives 0 and x >= 1 gives 1

    Returns:
        I_x(a, b) in [0, 1]
    """
    if x <= 0.0:
        return 0.0
    if x >= 1.0:
        return 1.0

    log_bt = (
        math.lgamma(a + b) - math.lgamma(a) - math.lgamma(b)
        + a * math.log(x) + b * math.log1p(-x)
    )
    bt = math.exp(log_bt)

    # Symmetry relation: evaluate whichever fraction converges faster
    if x < (a + 1.0) / (a + b + 2.0):
        result = bt * _betacf(a, b, x) / a
    else:
        result = 1.0 - bt * _betacf(b, a, 1.0 - x) / b

    return min(max(result, 0.0), 1.0)


def student_t_cdf(t: float, df: float) -> float:
    """
    CDF of Student's t distribution with df degrees of freedom.

    For t > 0: 1 - 0.5 * I_{df/(df+t^2)}(df/2, 1/2); mirrored for t < 0.
    """
    if t == 0:
        return 0.5
    z = df / (df + t * t)
    ib = regularized_incomplete_beta(0.5 * df, 0.5, z)
    if t > 0:
        return 1.0 - 0.5 * ib
    return 0.5 * ib


def f_dist_survival(f: float, d1: float, d2: float) -> float:
    """P(F >= f) for F ~ F(d1, d2); 1.0 for f <= 0."""
    if f <= 0:
        return 1.0
    if math.isinf(f):
        return 0.0
    x = d2 / (d2 + d1 * f)
    return regularized_incomplete_beta(d2 / 2.0, d1 / 2.0, x)


# ===================
# MULTIPLE TESTING
# ===================

def benjamini_hochberg(pvalues: Sequence[float]) -> List[float]:
    """
    Benjamini-Hochberg false-discovery-rate adjustment.

    Sorts ascending, walks from the largest rank down taking
    min(previous, p * n / rank) capped at 1, then restores input order.
    """
    n = len(pvalues)
    if n == 0:
        return []

    order = sorted(range(n), key=lambda i: pvalues[i])
    adjusted = [0.0] * n
    prev = 1.0
    for position in range(n - 1, -1, -1):
        idx = order[position]
        rank = position + 1
        value = min(prev, pvalues[idx] * n / rank, 1.0)
        adjusted[idx] = value
        prev = value

    return adjusted
