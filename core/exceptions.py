"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the trust & risk decision engine.

- Provides clear exception hierarchy
- Separates caller mistakes from collaborator failures
- Supports error categorization for alerting
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
TrustEngineException (base)
├── ConfigurationError
│   └── InvalidConfigError
├── ValidationError
│   ├── UnknownEventKindError
│   └── StatusTransitionError
├── StorageError
│   └── StorageTimeoutError
└── ActionExecutionError
    └── ActionTimeoutError

============================================================
FAILURE POLICY
============================================================
- ValidationError: raised before any scoring, caller must fix input
- StorageError: never blocks returning a computed decision
- ActionExecutionError: captured per action, never aborts siblings

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TrustEngineException(Exception):
    """
    Base exception for all decision engine errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - recoverable: for error handling decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    @property
    def requires_immediate_action(self) -> bool:
        """Check if error requires immediate action."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        base = (
            f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
            f" | recoverable={self.recoverable}"
        )
        return f"{base} | {ctx_str}" if ctx_str else base


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(TrustEngineException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# VALIDATION ERRORS (CALLER MISTAKES - FAIL FAST)
# ============================================================

class ValidationError(TrustEngineException):
    """
    Input failed validation.

    Raised synchronously before any scoring takes place.
    The caller never receives a partial decision.
    """

    default_severity = Severity.LOW
    default_recoverable = False
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]

        super().__init__(message, context=context, **kwargs)
        self.field = field


class UnknownEventKindError(ValidationError):
    """Event carries a kind the collector does not recognize."""

    def __init__(self, kind: Any):
        super().__init__(
            message=f"Unrecognized event kind: {kind!r}",
            field="kind",
            value=kind,
        )
        self.kind = kind


class StatusTransitionError(ValidationError):
    """A verification status change violates the allowed transitions."""

    def __init__(self, from_status: str, to_status: str, subject_id: Optional[str] = None):
        super().__init__(
            message=f"Illegal verification status transition: {from_status} -> {to_status}",
            field="status",
            context={
                "from_status": from_status,
                "to_status": to_status,
                "subject_id": subject_id,
            },
        )
        self.from_status = from_status
        self.to_status = to_status


# ============================================================
# STORAGE ERRORS (COLLABORATOR FAILURE - DEGRADE)
# ============================================================

class StorageError(TrustEngineException):
    """
    The audit store failed to persist or read a record.

    Reported as a warning next to the computed decision,
    so the caller can retry persistence out of band.
    """

    default_severity = Severity.MEDIUM
    default_recoverable = True
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        record_key: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if operation:
            context["operation"] = operation
        if record_key:
            context["record_key"] = record_key

        super().__init__(message, context=context, **kwargs)
        self.operation = operation


class StorageTimeoutError(StorageError):
    """Store call exceeded its timeout."""

    def __init__(self, operation: str, timeout_seconds: float, record_key: Optional[str] = None):
        super().__init__(
            message=f"Store {operation} timed out after {timeout_seconds}s",
            operation=operation,
            record_key=record_key,
            context={"timeout_seconds": timeout_seconds},
        )


# ============================================================
# ACTION EXECUTION ERRORS (COLLABORATOR FAILURE - PER ACTION)
# ============================================================

class ActionExecutionError(TrustEngineException):
    """
    A single action of a fan-out failed.

    Captured in the batch result, never propagated past
    the fan-out boundary.
    """

    default_severity = Severity.HIGH
    default_recoverable = True
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, action: str, message: str, **kwargs):
        context = kwargs.pop("context", {})
        context["action"] = action
        super().__init__(message, context=context, **kwargs)
        self.action = action


class ActionTimeoutError(ActionExecutionError):
    """Action call exceeded its timeout."""

    def __init__(self, action: str, timeout_seconds: float):
        super().__init__(
            action=action,
            message=f"Action {action} timed out after {timeout_seconds}s",
            context={"timeout_seconds": timeout_seconds},
        )
