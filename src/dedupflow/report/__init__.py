"""Report input and output."""
from .reader import ReportReader, parse_total, parse_quantity
from .writer import ReportWriter, file_timestamp

__all__ = ["ReportReader", "parse_total", "parse_quantity", "ReportWriter", "file_timestamp"]
