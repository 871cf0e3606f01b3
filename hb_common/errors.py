"""Shared error taxonomy for hostbench."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, TypeVar


class ErrorReason(str, Enum):
    """Classification attached to every engine failure."""

    PLATFORM_NOT_SUPPORTED = "platform_not_supported"
    DISTRO_NOT_SUPPORTED = "distro_not_supported"
    DEPENDENCY_MISSING = "dependency_missing"
    DEPENDENCY_INSTALLATION_FAILED = "dependency_installation_failed"
    DEPENDENCY_NOT_FOUND = "dependency_not_found"
    PROCESS_EXECUTION_FAILED = "process_execution_failed"
    RESULTS_PARSING_FAILED = "results_parsing_failed"
    CONFIGURATION_ERROR = "configuration_error"
    UNEXPECTED_ANOMALY = "unexpected_anomaly"
    CANCELLED = "cancelled"


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, list):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, tuple):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class HBError(Exception):
    """Base error type for typed failure handling."""

    default_reason: ErrorReason = ErrorReason.UNEXPECTED_ANOMALY

    def __init__(
        self,
        message: str,
        *,
        reason: ErrorReason | None = None,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.error_type,
            "reason": self.reason.value,
            "message": str(self),
            "context": self.context,
        }


class WorkloadError(HBError):
    """Failure while preparing or executing a workload."""


class PlatformError(WorkloadError):
    """The host platform or Linux distribution is not supported."""

    default_reason = ErrorReason.PLATFORM_NOT_SUPPORTED


class DependencyError(WorkloadError):
    """A package, disk or other host dependency is unavailable."""

    default_reason = ErrorReason.DEPENDENCY_MISSING


class ProcessExecutionError(WorkloadError):
    """An external process exited with a code outside the accepted set."""

    default_reason = ErrorReason.PROCESS_EXECUTION_FAILED


class ResultsParsingError(WorkloadError):
    """A benchmark report did not match the expected grammar."""

    default_reason = ErrorReason.RESULTS_PARSING_FAILED


class ConfigurationError(HBError):
    """Failure due to invalid configuration."""

    default_reason = ErrorReason.CONFIGURATION_ERROR


class StopRequested(Exception):
    """Raised when execution is stopped by an operator or deadline."""

    reason = ErrorReason.CANCELLED


T = TypeVar("T", bound=HBError)


def wrap_error(
    error_cls: type[T],
    message: str,
    *,
    reason: ErrorReason | None = None,
    context: Mapping[str, Any] | None = None,
    cause: Exception | None = None,
) -> T:
    """Create a typed HBError with optional reason, context and cause."""
    return error_cls(message, reason=reason, context=context, cause=cause)


def error_to_payload(error: BaseException) -> dict[str, Any]:
    """Convert an error to an outcome/telemetry payload."""
    if isinstance(error, HBError):
        return {
            "error_type": error.error_type,
            "error_reason": error.reason.value,
            "error": str(error),
            "error_context": error.context,
        }
    if isinstance(error, StopRequested):
        return {
            "error_type": error.__class__.__name__,
            "error_reason": ErrorReason.CANCELLED.value,
            "error": str(error),
            "error_context": {},
        }
    return {
        "error_type": error.__class__.__name__,
        "error_reason": ErrorReason.UNEXPECTED_ANOMALY.value,
        "error": str(error),
        "error_context": {},
    }
