"""
Error Taxonomy for the Statistics Engine

Provides systematic classification of analysis failure modes with:
- Error categories aligned to the engine's computation kinds
- Recoverability indicators
- Suggested recovery actions
- Structured error context for debugging

Propagation policy:
- Primitives and single-series functions raise AnalysisError subclasses
  directly to their caller.
- Aggregate functions (e.g. "correlate this product with every symbol")
  catch AnalysisError per symbol/factor, log the classified error and
  continue with whatever succeeded.
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging
import traceback

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Systematic classification of failure modes."""
    # Input shape
    DEGENERATE_INPUT = auto()
    INVALID_PARAMETER = auto()

    # Sample thresholds
    INSUFFICIENT_DATA = auto()
    INSUFFICIENT_SAMPLES = auto()
    INSUFFICIENT_HISTORY = auto()

    # Linear algebra
    SINGULAR_MATRIX = auto()

    # Collaborators
    DATA_SOURCE_UNAVAILABLE = auto()

    # System
    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RecoveryAction:
    """Suggested action to recover from an error."""
    action_type: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def skip(unit: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="skip",
            description=f"Skip this {unit} and continue with the rest",
            parameters={"unit": unit},
        )

    @staticmethod
    def collect_more_data(minimum: int) -> "RecoveryAction":
        return RecoveryAction(
            action_type="collect_more_data",
            description=f"Provide at least {minimum} observations",
            parameters={"minimum": minimum},
        )

    @staticmethod
    def abort(reason: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="abort",
            description=f"Abort operation: {reason}",
            parameters={"reason": reason},
        )


@dataclass
class ClassifiedError:
    """A classified error with full context."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recoverable: bool
    recovery_actions: List[RecoveryAction]

    original_exception: Optional[Exception] = None
    pipeline_phase: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def __post_init__(self):
        if self.original_exception and not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.original_exception),
                self.original_exception,
                self.original_exception.__traceback__
            ))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "recovery_actions": [
                {"type": a.action_type, "description": a.description}
                for a in self.recovery_actions
            ],
            "pipeline_phase": self.pipeline_phase,
            "context": self.context,
        }


class AnalysisError(Exception):
    """Base exception for engine errors with classification."""

    default_category = ErrorCategory.UNKNOWN_ERROR
    default_severity = ErrorSeverity.MEDIUM
    default_recoverable = False

    def __init__(
        self,
        message: str,
        category: ErrorCategory = None,
        severity: ErrorSeverity = None,
        recoverable: bool = None,
        recovery_actions: List[RecoveryAction] = None,
        context: Dict[str, Any] = None,
    ):
        super().__init__(message)
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.recovery_actions = recovery_actions or []
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            recoverable=self.recoverable,
            recovery_actions=self.recovery_actions,
            original_exception=self,
            context=dict(self.context),
        )


class DegenerateInputError(AnalysisError):
    """Zero-variance, empty or mismatched series."""
    default_category = ErrorCategory.DEGENERATE_INPUT
    default_severity = ErrorSeverity.LOW
    default_recoverable = True


class InvalidParameterError(AnalysisError, ValueError):
    """A caller-supplied parameter is outside its allowed range."""
    default_category = ErrorCategory.INVALID_PARAMETER
    default_severity = ErrorSeverity.HIGH


class InsufficientDataError(AnalysisError):
    """Fewer observations than the computation requires."""
    default_category = ErrorCategory.INSUFFICIENT_DATA
    default_severity = ErrorSeverity.LOW
    default_recoverable = True

    def __init__(self, message: str, required: int = None, actual: int = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if required is not None:
            context["required"] = required
            kwargs.setdefault("recovery_actions", [RecoveryAction.collect_more_data(required)])
        if actual is not None:
            context["actual"] = actual
        super().__init__(message, context=context, **kwargs)
        self.required = required
        self.actual = actual


class InsufficientSamplesError(InsufficientDataError):
    """Too few samples for the requested lag order / degrees of freedom."""
    default_category = ErrorCategory.INSUFFICIENT_SAMPLES


class InsufficientHistoryError(InsufficientDataError):
    """Fewer periods than a moving window needs."""
    default_category = ErrorCategory.INSUFFICIENT_HISTORY


class SingularMatrixError(AnalysisError):
    """Linear system cannot be solved (pivot below tolerance)."""
    default_category = ErrorCategory.SINGULAR_MATRIX
    default_severity = ErrorSeverity.MEDIUM
    default_recoverable = True


class DataSourceError(AnalysisError):
    """A collaborator could not supply the requested series."""
    default_category = ErrorCategory.DATA_SOURCE_UNAVAILABLE
    default_severity = ErrorSeverity.MEDIUM
    default_recoverable = True


def classify_error(
    exception: Exception,
    pipeline_phase: str = None,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify an exception into a structured error."""
    context = context or {}

    if isinstance(exception, AnalysisError):
        classified = exception.classify()
        classified.pipeline_phase = pipeline_phase
        classified.context.update(context)
        return classified

    if isinstance(exception, ZeroDivisionError):
        return ClassifiedError(
            category=ErrorCategory.DEGENERATE_INPUT,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=True,
            recovery_actions=[RecoveryAction.skip("computation")],
            original_exception=exception,
            pipeline_phase=pipeline_phase,
            context=context,
        )

    if isinstance(exception, (FileNotFoundError, PermissionError)):
        return ClassifiedError(
            category=ErrorCategory.DATA_SOURCE_UNAVAILABLE,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            recoverable=False,
            recovery_actions=[RecoveryAction.abort("data file not readable")],
            original_exception=exception,
            pipeline_phase=pipeline_phase,
            context=context,
        )

    # Default
    return ClassifiedError(
        category=ErrorCategory.UNKNOWN_ERROR,
        severity=ErrorSeverity.HIGH,
        message=str(exception),
        recoverable=False,
        recovery_actions=[],
        original_exception=exception,
        pipeline_phase=pipeline_phase,
        context=context,
    )
