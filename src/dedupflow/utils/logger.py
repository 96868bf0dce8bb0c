"""Logging infrastructure with report context."""
import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional


def app_data_dir() -> Path:
    """Return the per-user DedupFlow data directory."""
    base = os.getenv("LOCALAPPDATA")
    if base:
        return Path(base) / "DedupFlow"
    return Path.home() / ".dedupflow"


class ReportContextFilter(logging.Filter):
    """Add report context to log records."""
    
    def __init__(self):
        super().__init__()
        self.report_name: Optional[str] = None
    
    def filter(self, record):
        """Add report name to record."""
        record.report = self.report_name or "-"
        return True


class DedupFlowLogger:
    """Centralized logging manager."""
    
    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        max_file_size_mb: int = 10,
        backup_count: int = 30
    ):
        self.log_dir = Path(log_dir) if log_dir else app_data_dir() / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        
        self.log_file = self.log_dir / "dedupflow.log"
        self.report_filter = ReportContextFilter()
        
        self.logger = logging.getLogger("dedupflow")
        self.logger.setLevel(getattr(logging, log_level.upper()))
        
        # Remove existing handlers
        self.logger.handlers.clear()
        
        file_handler = RotatingFileHandler(
            self.log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [report:%(report)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)
        
        file_handler.addFilter(self.report_filter)
        console_handler.addFilter(self.report_filter)
        
        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)
    
    def set_report_context(self, report_name: Optional[str]):
        """Set current report context for logging."""
        self.report_filter.report_name = report_name
    
    def get_logger(self) -> logging.Logger:
        """Get the configured logger."""
        return self.logger


# Global logger instance
_logger_instance: Optional[DedupFlowLogger] = None


def get_logger(log_level: str = "INFO") -> logging.Logger:
    """Get or create global logger instance."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = DedupFlowLogger(log_level)
    return _logger_instance.get_logger()


def configure_logging(
    log_level: str,
    log_dir: Optional[Path] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 30
) -> logging.Logger:
    """Rebuild the global logger from loaded settings."""
    global _logger_instance
    _logger_instance = DedupFlowLogger(log_level, log_dir, max_file_size_mb, backup_count)
    return _logger_instance.get_logger()


def set_report_context(report_name: Optional[str]):
    """Set report context for logging."""
    global _logger_instance
    if _logger_instance:
        _logger_instance.set_report_context(report_name)
