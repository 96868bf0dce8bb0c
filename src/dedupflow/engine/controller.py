"""Run controller: load memory, aggregate one report, checkpoint memory.

A run is one pass over one report's records. Both memories are loaded before
the first record is looked at and written back together after the last one.
Nothing a run produces should be reported until run() returns, because only
then are the records it counted durably remembered.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .aggregator import Aggregator
from .memory import FINGERPRINTS, SKUS, MemorySet
from .models import AggregationResult, TransactionRecord
from ..utils.exceptions import PersistenceError
from ..utils.logger import get_logger

logger = get_logger()


@dataclass
class RunOutcome:
    """Everything a successful run hands to the output side."""
    result: AggregationResult
    new_skus: List[str] = field(default_factory=list)
    fingerprints: Optional[MemorySet] = None
    skus: Optional[MemorySet] = None


class RunController:
    """Threads both memories through a single aggregation pass."""

    def __init__(self, fingerprint_store, sku_store):
        if fingerprint_store.kind != FINGERPRINTS or sku_store.kind != SKUS:
            raise ValueError("Stores must be a fingerprint store and a SKU store, in that order")
        self.fingerprint_store = fingerprint_store
        self.sku_store = sku_store

    def run(self, records: Iterable[TransactionRecord]) -> RunOutcome:
        """
        Deduplicate and aggregate records, then persist both memories.

        Args:
            records: Parsed transactions in report order; consumed once

        Returns:
            RunOutcome with buckets in first-seen order and new SKUs

        Raises:
            CorruptMemoryError: If either memory file is damaged (nothing is aggregated)
            PersistenceError: If either memory could not be saved
        """
        fingerprints = self.fingerprint_store.load()
        skus = self.sku_store.load()
        known_fingerprints, known_skus = len(fingerprints), len(skus)

        aggregator = Aggregator(fingerprints, skus)
        for record in records:
            aggregator.process(record)

        result = aggregator.result
        logger.info(
            f"Processed {result.new_count + result.duplicate_count + result.skipped_count} records: "
            f"{result.new_count} new, {result.duplicate_count} duplicate, "
            f"{result.skipped_count} skipped, {len(result.buckets)} buckets, "
            f"{len(aggregator.new_skus)} new SKUs"
        )

        self._checkpoint(fingerprints, skus)
        logger.info(
            f"Memory now holds {len(fingerprints)} fingerprints (+{len(fingerprints) - known_fingerprints}) "
            f"and {len(skus)} SKUs (+{len(skus) - known_skus})"
        )

        return RunOutcome(
            result=result,
            new_skus=aggregator.new_skus,
            fingerprints=fingerprints,
            skus=skus,
        )

    def _checkpoint(self, fingerprints: MemorySet, skus: MemorySet) -> None:
        """
        Stage both memories before replacing either, then commit both.

        SKUs are committed first. If the fingerprint replace then fails, the
        run's records are still unrecorded and a rerun counts them, but their
        SKUs are already known and are not listed as new again. Committing
        fingerprints first would lose the totals as well.
        """
        staged_fingerprints = self.fingerprint_store.prepare(fingerprints)
        try:
            staged_skus = self.sku_store.prepare(skus)
        except PersistenceError:
            self.fingerprint_store.discard(staged_fingerprints)
            raise

        try:
            self.sku_store.commit(staged_skus)
        except PersistenceError:
            self.fingerprint_store.discard(staged_fingerprints)
            raise
        self.fingerprint_store.commit(staged_fingerprints)


def run(records: Iterable[TransactionRecord], fingerprint_store, sku_store) -> RunOutcome:
    """Convenience wrapper around RunController.run()."""
    return RunController(fingerprint_store, sku_store).run(records)
