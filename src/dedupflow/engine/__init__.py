"""Deduplication and aggregation engine."""
from .models import (
    TransactionRecord,
    Classification,
    AggregationKey,
    AggregationBucket,
    AggregationResult,
    SkippedRecord,
)
from .fingerprint import fingerprint
from .memory import MemorySet, SqliteSetStore, InMemorySetStore, FINGERPRINTS, SKUS
from .aggregator import Aggregator, fold_unlisted
from .controller import RunController, RunOutcome, run
from .sku_matcher import SkuMatcher

__all__ = [
    "TransactionRecord",
    "Classification",
    "AggregationKey",
    "AggregationBucket",
    "AggregationResult",
    "SkippedRecord",
    "fingerprint",
    "MemorySet",
    "SqliteSetStore",
    "InMemorySetStore",
    "FINGERPRINTS",
    "SKUS",
    "Aggregator",
    "fold_unlisted",
    "RunController",
    "RunOutcome",
    "run",
    "SkuMatcher",
]
