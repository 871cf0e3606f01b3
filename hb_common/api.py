"""Public API surface for hb_common."""

from hb_common.errors import (
    ConfigurationError,
    DependencyError,
    ErrorReason,
    HBError,
    PlatformError,
    ProcessExecutionError,
    ResultsParsingError,
    StopRequested,
    WorkloadError,
    error_to_payload,
    wrap_error,
)
from hb_common.logging import LogOptions, bind_run_context, configure_logging

__all__ = [
    "ConfigurationError",
    "DependencyError",
    "ErrorReason",
    "HBError",
    "LogOptions",
    "PlatformError",
    "ProcessExecutionError",
    "ResultsParsingError",
    "StopRequested",
    "WorkloadError",
    "bind_run_context",
    "configure_logging",
    "error_to_payload",
    "wrap_error",
]
