"""Utility modules."""
from .logger import get_logger, configure_logging, set_report_context
from .exceptions import (
    DedupFlowError,
    ConfigError,
    MemoryFileError,
    CorruptMemoryError,
    PersistenceError,
    ReportError,
    OutputError,
    ValidationError
)
from .retry import retry_with_backoff

__all__ = [
    "get_logger",
    "configure_logging",
    "set_report_context",
    "DedupFlowError",
    "ConfigError",
    "MemoryFileError",
    "CorruptMemoryError",
    "PersistenceError",
    "ReportError",
    "OutputError",
    "ValidationError",
    "retry_with_backoff"
]
