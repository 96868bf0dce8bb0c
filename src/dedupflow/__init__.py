"""DedupFlow: cross-run deduplication and aggregation of sales reports."""

__version__ = "1.0.0"
