"""Custom exception classes for DedupFlow."""


class DedupFlowError(Exception):
    """Base exception for DedupFlow."""
    pass


class ConfigError(DedupFlowError):
    """Configuration-related errors."""
    pass


class MemoryFileError(DedupFlowError):
    """Persisted memory errors."""
    pass


class CorruptMemoryError(MemoryFileError):
    """A memory file exists but cannot be read back."""
    pass


class PersistenceError(MemoryFileError):
    """Writing a memory file failed."""
    pass


class ReportError(DedupFlowError):
    """Input report errors."""
    pass


class OutputError(DedupFlowError):
    """Output file errors."""
    pass


class ValidationError(DedupFlowError):
    """Data validation errors."""
    pass
