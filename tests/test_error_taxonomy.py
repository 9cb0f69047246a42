"""
Tests for error classification.
"""
from src.core.error_taxonomy import (
    AnalysisError,
    DataSourceError,
    ErrorCategory,
    ErrorSeverity,
    InsufficientHistoryError,
    InsufficientSamplesError,
    InvalidParameterError,
    SingularMatrixError,
    classify_error,
)


class TestAnalysisErrors:
    """Tests for the exception hierarchy."""

    def test_insufficient_samples_context(self):
        error = InsufficientSamplesError("too short", required=14, actual=9)

        assert error.category == ErrorCategory.INSUFFICIENT_SAMPLES
        assert error.recoverable
        assert error.context == {"required": 14, "actual": 9}
        assert error.recovery_actions[0].action_type == "collect_more_data"
        assert error.recovery_actions[0].parameters == {"minimum": 14}

    def test_insufficient_history_category(self):
        assert InsufficientHistoryError("x").category == ErrorCategory.INSUFFICIENT_HISTORY

    def test_invalid_parameter_is_value_error(self):
        error = InvalidParameterError("bad horizon")
        assert isinstance(error, ValueError)
        assert isinstance(error, AnalysisError)
        assert error.severity == ErrorSeverity.HIGH
        assert not error.recoverable

    def test_overrides(self):
        error = SingularMatrixError("pivot", severity=ErrorSeverity.CRITICAL, recoverable=False)
        assert error.severity == ErrorSeverity.CRITICAL
        assert not error.recoverable


class TestClassifyError:
    """Tests for classify_error."""

    def test_analysis_error_keeps_category(self):
        error = DataSourceError("csv missing", context={"symbol": "WTI"})
        classified = classify_error(error, pipeline_phase="economic_data", context={"attempt": 1})

        assert classified.category == ErrorCategory.DATA_SOURCE_UNAVAILABLE
        assert classified.pipeline_phase == "economic_data"
        assert classified.context == {"symbol": "WTI", "attempt": 1}
        assert error.context == {"symbol": "WTI"}
        assert classified.to_dict()["category"] == "DATA_SOURCE_UNAVAILABLE"

    def test_zero_division(self):
        classified = classify_error(ZeroDivisionError("division by zero"))
        assert classified.category == ErrorCategory.DEGENERATE_INPUT
        assert classified.recoverable

    def test_missing_file(self):
        classified = classify_error(FileNotFoundError("nikkei.csv"))
        assert classified.category == ErrorCategory.DATA_SOURCE_UNAVAILABLE
        assert not classified.recoverable

    def test_unknown(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            classified = classify_error(e)
        assert classified.category == ErrorCategory.UNKNOWN_ERROR
        assert "RuntimeError: boom" in classified.stack_trace
