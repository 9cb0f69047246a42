"""
Tests for the correlation engine.

Covers:
- Pearson coefficient and its p-value against scipy
- Interpretation wording thresholds
- Full-range lag scanning
- Sliding-window lag scanning, including gaps in the x timeline
"""
from datetime import date, timedelta

import pytest
from scipy import stats

from src.core.error_taxonomy import (
    DegenerateInputError,
    InsufficientDataError,
    InvalidParameterError,
)
from src.tools.correlation import (
    CorrelationResult,
    pearson,
    p_value,
    interpret_correlation,
    lag_label,
    lagged_correlation,
    windowed_lagged_correlation,
    top_correlations,
)

START = date(2024, 1, 1)


def _noisy_values(count):
    return [(i * 37 % 17) + 0.5 * i for i in range(count)]


def _days(offsets):
    return [START + timedelta(days=o) for o in offsets]


class TestPearson:
    """Tests for the coefficient itself."""

    def test_perfect_positive(self):
        assert pearson([1, 2, 3, 4, 5], [2, 4, 6, 8, 10]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson([1, 2, 3, 4, 5], [10, 8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_matches_scipy(self):
        x = _noisy_values(20)
        y = [v * 0.3 + (i % 5) for i, v in enumerate(x)]
        expected_r, expected_p = stats.pearsonr(x, y)

        r = pearson(x, y)
        assert r == pytest.approx(expected_r, rel=1e-9)
        assert p_value(r, len(x)) == pytest.approx(expected_p, rel=1e-4, abs=1e-10)

    def test_symmetric(self):
        x = _noisy_values(20)
        y = [v * 0.3 + (i % 5) for i, v in enumerate(x)]
        assert pearson(x, y) == pytest.approx(pearson(y, x), rel=1e-12)

    def test_constant_series_is_degenerate(self):
        with pytest.raises(DegenerateInputError):
            pearson([1, 2, 3], [5, 5, 5])

    def test_length_mismatch_is_degenerate(self):
        with pytest.raises(DegenerateInputError):
            pearson([1, 2, 3], [1, 2])

    def test_empty_is_degenerate(self):
        with pytest.raises(DegenerateInputError):
            pearson([], [])


class TestPValue:
    """Tests for the t-test significance."""

    def test_fewer_than_three_pairs(self):
        assert p_value(0.9, 2) == 1.0

    def test_perfect_correlation_is_zero(self):
        assert p_value(1.0, 10) == 0.0
        assert p_value(-1.0, 10) == 0.0

    def test_zero_correlation_is_one(self):
        assert p_value(0.0, 30) == pytest.approx(1.0)


class TestInterpretation:
    """Tests for the strength/direction wording."""

    @pytest.mark.parametrize("r,expected", [
        (0.85, "strong positive correlation (statistically significant)"),
        (-0.5, "moderate negative correlation (statistically significant)"),
        (0.25, "weak positive correlation (statistically significant)"),
        (0.1, "negligible positive correlation (statistically significant)"),
    ])
    def test_strength_bands(self, r, expected):
        assert interpret_correlation(r, 0.01) == expected

    def test_not_significant(self):
        assert interpret_correlation(0.7, 0.05) == "strong positive correlation (not statistically significant)"

    def test_lag_labels(self):
        assert lag_label(0) == "lag=0"
        assert lag_label(3) == "y lags x by +3 days"
        assert lag_label(-2) == "y leads x by 2 days"


class TestLaggedCorrelation:
    """Tests for the full-range lag sweep."""

    def test_recovers_known_lag(self):
        """y is x shifted three days later, so lag +3 is a perfect match."""
        x_dates = _days(range(40))
        values = _noisy_values(40)
        y_dates = [d + timedelta(days=3) for d in x_dates]

        results = lagged_correlation(x_dates, values, y_dates, values, max_lag_days=5)

        best = results[0]
        assert best.lag_days == 3
        assert best.coefficient == pytest.approx(1.0)
        assert best.label == "y lags x by +3 days"
        assert best.sample_size == 40

    def test_lag_zero_equals_plain_pearson(self):
        dates = _days(range(30))
        x = _noisy_values(30)
        y = [v * 0.3 + (i % 5) for i, v in enumerate(x)]

        results = lagged_correlation(dates, x, dates, y, max_lag_days=4)

        lag_zero = next(r for r in results if r.lag_days == 0)
        assert lag_zero.coefficient == pytest.approx(pearson(x, y), rel=1e-12)
        assert lag_zero.sample_size == 30

    def test_sorted_by_absolute_coefficient(self):
        x_dates = _days(range(30))
        values = _noisy_values(30)
        results = lagged_correlation(x_dates, values, x_dates, values, max_lag_days=4)

        magnitudes = [abs(r.coefficient) for r in results]
        assert magnitudes == sorted(magnitudes, reverse=True)
        assert {r.lag_days for r in results} <= set(range(-4, 5))

    def test_lags_with_too_few_points_are_skipped(self):
        """With 8 overlapping days, lags beyond ±3 leave fewer than 5 pairs."""
        dates = _days(range(8))
        values = _noisy_values(8)
        results = lagged_correlation(dates, values, dates, values, max_lag_days=6)

        assert all(abs(r.lag_days) <= 3 for r in results)
        assert all(r.sample_size >= 5 for r in results)

    def test_accepts_iso_strings(self):
        x_dates = [d.isoformat() for d in _days(range(10))]
        values = _noisy_values(10)
        results = lagged_correlation(x_dates, values, x_dates, values, max_lag_days=0)
        assert len(results) == 1
        assert results[0].coefficient == pytest.approx(1.0)

    def test_duplicate_dates_rejected(self):
        dates = _days([0, 1, 2, 3, 4, 4])
        with pytest.raises(InvalidParameterError):
            lagged_correlation(dates, _noisy_values(6), _days(range(6)), _noisy_values(6), 1)

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(InvalidParameterError):
            lagged_correlation(_days(range(6)), _noisy_values(5), _days(range(6)), _noisy_values(6), 1)

    def test_short_series_rejected(self):
        with pytest.raises(InsufficientDataError):
            lagged_correlation(_days(range(4)), _noisy_values(4), _days(range(10)), _noisy_values(10), 1)

    def test_negative_max_lag_rejected(self):
        with pytest.raises(InvalidParameterError):
            lagged_correlation(_days(range(10)), _noisy_values(10), _days(range(10)), _noisy_values(10), -1)


class TestWindowedLaggedCorrelation:
    """Tests for the sliding-window lag sweep."""

    def test_regular_windows(self):
        """60 contiguous days, 14-day windows stepping by 7."""
        dates = _days(range(60))
        values = _noisy_values(60)
        y_dates = [d + timedelta(days=1) for d in dates]

        results = windowed_lagged_correlation(
            dates, values, y_dates, values, max_lag_days=2, window_days=14, step_days=7
        )

        assert len(results) == 8
        assert [r.window_start for r in results] == _days(range(0, 56, 7))
        for window in results:
            assert window.window_end == window.window_start + timedelta(days=13)
            assert window.best_lag == 1
            assert window.coefficient == pytest.approx(1.0)
            assert window.adjusted_p_value >= window.p_value

    def test_gap_lengthens_step(self):
        """A missing run of x dates pushes the next window to the next observed date."""
        offsets = list(range(0, 12)) + list(range(15, 41))
        dates = _days(offsets)
        values = _noisy_values(len(offsets))
        y_dates = [d + timedelta(days=1) for d in dates]

        results = windowed_lagged_correlation(
            dates, values, y_dates, values, max_lag_days=1, window_days=7, step_days=7
        )

        assert [r.window_start for r in results] == _days([0, 7, 15, 22, 29, 36])

    def test_window_too_small_rejected(self):
        dates = _days(range(20))
        with pytest.raises(InvalidParameterError):
            windowed_lagged_correlation(dates, _noisy_values(20), dates, _noisy_values(20), 1, 6, 1)

    def test_step_must_be_positive(self):
        dates = _days(range(20))
        with pytest.raises(InvalidParameterError):
            windowed_lagged_correlation(dates, _noisy_values(20), dates, _noisy_values(20), 1, 7, 0)

    def test_empty_x_rejected(self):
        with pytest.raises(InsufficientDataError):
            windowed_lagged_correlation([], [], _days(range(5)), _noisy_values(5), 1, 7, 1)


class TestTopCorrelations:
    """Tests for the top-N reduction."""

    def _result(self, r):
        return CorrelationResult(label=f"r={r}", coefficient=r, p_value=0.01,
                                 sample_size=10, interpretation="")

    def test_keeps_strongest(self):
        results = [self._result(r) for r in (0.1, -0.9, 0.5, 0.3, -0.6)]
        top = top_correlations(results, limit=3)
        assert [r.coefficient for r in top] == [-0.9, -0.6, 0.5]

    def test_fewer_than_limit(self):
        results = [self._result(0.2)]
        assert top_correlations(results) == results

    def test_with_label_keeps_statistics(self):
        original = self._result(0.4)
        renamed = original.with_label("temperature: lag=0")
        assert renamed.label == "temperature: lag=0"
        assert renamed.coefficient == original.coefficient
        assert renamed.is_significant
