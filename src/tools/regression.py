"""
Regression & Causality Engine

Simple least-squares regression, a small dense SPD solver for normal
equations, and a Granger causality F-test built on top of them.

Follows Accuracy-First Framework:
- All calculations are deterministic
- Singular systems are reported, never silently regularized
"""
import math
import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Sequence

import numpy as np

from src.core.error_taxonomy import (
    DegenerateInputError,
    InsufficientDataError,
    InsufficientSamplesError,
    InvalidParameterError,
    SingularMatrixError,
)
from src.tools.numeric import f_dist_survival, mean

logger = logging.getLogger(__name__)

PIVOT_TOLERANCE = 1e-12
GRANGER_MIN_EXTRA_SAMPLES = 10


@dataclass(frozen=True)
class RegressionModel:
    """Fitted y = slope * x + intercept."""
    slope: float
    intercept: float
    r_squared: float
    prediction: float  # fitted value at the last x
    confidence: float  # equals r_squared
    equation: str

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "prediction": self.prediction,
            "confidence": self.confidence,
            "equation": self.equation,
        }


@dataclass(frozen=True)
class GrangerResult:
    """Outcome of a Granger causality F-test."""
    f_statistic: float
    p_value: float
    lag_order: int
    df_numerator: int
    df_denominator: int

    @property
    def is_significant(self) -> bool:
        return self.p_value < 0.05

    def to_dict(self) -> Dict[str, Any]:
        return {
            "f_statistic": self.f_statistic,
            "p_value": self.p_value,
            "lag_order": self.lag_order,
            "df_numerator": self.df_numerator,
            "df_denominator": self.df_denominator,
            "is_significant": self.is_significant,
        }


# ===================
# SIMPLE REGRESSION
# ===================

def linear_regression(x: Sequence[float], y: Sequence[float]) -> RegressionModel:
    """
    Ordinary least squares fit of y on x.

    Raises:
        InsufficientDataError: fewer than 2 points or mismatched lengths
        DegenerateInputError: x has zero variance
    """
    if len(x) != len(y) or len(x) < 2:
        raise InsufficientDataError(
            f"Regression needs at least 2 paired points (got x={len(x)}, y={len(y)})",
            required=2,
            actual=min(len(x), len(y)),
        )

    mean_x = mean(x)
    mean_y = mean(y)
    sxx = sum((xi - mean_x) ** 2 for xi in x)
    if sxx == 0:
        raise DegenerateInputError("x has zero variance; slope is undefined")
    sxy = sum((xi - mean_x) * (yi - mean_y) for xi, yi in zip(x, y))

    slope = sxy / sxx
    intercept = mean_y - slope * mean_x

    ss_total = sum((yi - mean_y) ** 2 for yi in y)
    if ss_total == 0:
        r_squared = 0.0
    else:
        ss_residual = sum((yi - (slope * xi + intercept)) ** 2 for xi, yi in zip(x, y))
        r_squared = 1.0 - ss_residual / ss_total

    prediction = slope * x[-1] + intercept
    equation = f"y = {slope:.2f}x + {intercept:.2f} (R² = {r_squared:.3f})"

    return RegressionModel(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        prediction=prediction,
        confidence=r_squared,
        equation=equation,
    )


def detrend(values: Sequence[float]) -> List[float]:
    """
    Remove a fitted linear trend over index 1..n.

    Series shorter than 2 (or with a degenerate fit) come back unchanged.
    """
    if len(values) < 2:
        return list(values)
    index = [float(i + 1) for i in range(len(values))]
    try:
        model = linear_regression(index, values)
    except DegenerateInputError:
        return list(values)
    return [v - model.predict(t) for t, v in zip(index, values)]


# ===================
# LINEAR ALGEBRA
# ===================

def _gaussian_elimination(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Gaussian elimination with partial pivoting on working copies."""
    n = A.shape[0]
    m = A.copy()
    v = b.copy()

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(m[col:, col])))
        if abs(m[pivot_row, col]) < PIVOT_TOLERANCE:
            raise SingularMatrixError(
                f"Matrix is singular (pivot {m[pivot_row, col]:.3e} at column {col})",
                context={"column": col},
            )
        if pivot_row != col:
            m[[col, pivot_row]] = m[[pivot_row, col]]
            v[[col, pivot_row]] = v[[pivot_row, col]]
        for row in range(col + 1, n):
            factor = m[row, col] / m[col, col]
            m[row, col:] -= factor * m[col, col:]
            v[row] -= factor * v[col]

    solution = np.zeros(n)
    for row in range(n - 1, -1, -1):
        solution[row] = (v[row] - m[row, row + 1:] @ solution[row + 1:]) / m[row, row]
    return solution


def _cholesky_solve(A: np.ndarray, b: np.ndarray):
    """Solve via A = L L^T; returns None when a pivot is not positive."""
    n = A.shape[0]
    L = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1):
            s = A[i, j] - L[i, :j] @ L[j, :j]
            if i == j:
                if s <= PIVOT_TOLERANCE:
                    return None
                L[i, i] = math.sqrt(s)
            else:
                L[i, j] = s / L[j, j]

    z = np.zeros(n)
    for i in range(n):
        z[i] = (b[i] - L[i, :i] @ z[:i]) / L[i, i]
    solution = np.zeros(n)
    for i in range(n - 1, -1, -1):
        solution[i] = (z[i] - L[i + 1:, i] @ solution[i + 1:]) / L[i, i]
    return solution


def solve_symmetric_positive_definite(A, b) -> np.ndarray:
    """
    Solve A x = b for a symmetric (ideally positive definite) matrix.

    Tries Cholesky first and falls back to Gaussian elimination with partial
    pivoting when a pivot is not positive.

    Raises:
        InvalidParameterError: A is not square or b does not match
        SingularMatrixError: pivot magnitude below 1e-12
    """
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    if A.size == 0 and b.size == 0:
        return np.zeros(0)
    if A.ndim != 2 or A.shape[0] != A.shape[1] or b.shape != (A.shape[0],):
        raise InvalidParameterError(
            f"Shape mismatch: A is {A.shape}, b is {b.shape}",
            context={"a_shape": list(A.shape), "b_shape": list(b.shape)},
        )

    solution = _cholesky_solve(A, b)
    if solution is None:
        logger.debug("Cholesky pivot not positive; falling back to Gaussian elimination")
        solution = _gaussian_elimination(A, b)
    return solution


def multiple_ols_rss(y: Sequence[float], design) -> float:
    """
    Residual sum of squares of y regressed on the columns of design (n x k).

    An empty design (k = 0) gives sum(y^2).
    """
    y_arr = np.asarray(y, dtype=float)
    X = np.asarray(design, dtype=float)
    if X.size == 0 or (X.ndim == 2 and X.shape[1] == 0):
        return float(y_arr @ y_arr)
    if X.ndim != 2 or X.shape[0] != y_arr.shape[0]:
        raise InvalidParameterError(
            f"Design matrix shape {X.shape} does not match {y_arr.shape[0]} observations"
        )

    beta = solve_symmetric_positive_definite(X.T @ X, X.T @ y_arr)
    residuals = y_arr - X @ beta
    return float(residuals @ residuals)


# ===================
# CAUSALITY
# ===================

def _lag_matrix(series: np.ndarray, lag_order: int) -> np.ndarray:
    """Columns series[t-1] .. series[t-p] for t = p..n-1."""
    n = series.shape[0]
    return np.column_stack([series[lag_order - k:n - k] for k in range(1, lag_order + 1)])


def granger_causality(y: Sequence[float], x: Sequence[float], lag_order: int) -> GrangerResult:
    """
    Does x Granger-cause y?

    Compares a restricted model (y on its own p lags) with a full model
    (y on its own lags plus p lags of x). Both series are de-meaned first.

    Raises:
        InvalidParameterError: lag_order < 1
        InsufficientSamplesError: lengths differ or T < 2p + 10
    """
    if lag_order < 1:
        raise InvalidParameterError(f"lag_order must be >= 1, got {lag_order}")
    if len(y) != len(x):
        raise InsufficientSamplesError(
            f"Series lengths differ ({len(y)} != {len(x)})",
            context={"y_length": len(y), "x_length": len(x)},
        )

    T = len(y)
    required = 2 * lag_order + GRANGER_MIN_EXTRA_SAMPLES
    if T < required or T - 2 * lag_order <= 0:
        raise InsufficientSamplesError(
            f"Granger test with lag {lag_order} needs at least {required} samples (got {T})",
            required=required,
            actual=T,
        )

    y_arr = np.asarray(y, dtype=float)
    x_arr = np.asarray(x, dtype=float)
    y_arr = y_arr - y_arr.mean()
    x_arr = x_arr - x_arr.mean()

    target = y_arr[lag_order:]
    restricted = _lag_matrix(y_arr, lag_order)
    full = np.hstack([restricted, _lag_matrix(x_arr, lag_order)])

    rss_restricted = multiple_ols_rss(target, restricted)
    rss_full = multiple_ols_rss(target, full)

    df_num = lag_order
    df_den = T - 2 * lag_order
    if rss_restricted - rss_full <= 0:
        f_stat = 0.0
        p = 1.0
    elif rss_full <= 0:
        f_stat = math.inf
        p = 0.0
    else:
        f_stat = ((rss_restricted - rss_full) / df_num) / (rss_full / df_den)
        p = f_dist_survival(f_stat, df_num, df_den)

    logger.debug(f"Granger lag={lag_order}: F={f_stat:.4f}, p={p:.4f}")
    return GrangerResult(
        f_statistic=f_stat,
        p_value=p,
        lag_order=lag_order,
        df_numerator=df_num,
        df_denominator=df_den,
    )
