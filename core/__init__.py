"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- logging_config: Process-wide logging setup
"""

from .clock import ClockProtocol, MockClock, SystemClock, get_clock
from .exceptions import (
    ActionExecutionError,
    ConfigurationError,
    StatusTransitionError,
    StorageError,
    StorageTimeoutError,
    TrustEngineException,
    UnknownEventKindError,
    ValidationError,
)
from .logging_config import JsonLogFormatter, setup_logging


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "get_clock",
    "TrustEngineException",
    "ConfigurationError",
    "ValidationError",
    "UnknownEventKindError",
    "StatusTransitionError",
    "StorageError",
    "StorageTimeoutError",
    "ActionExecutionError",
    "JsonLogFormatter",
    "setup_logging",
]
