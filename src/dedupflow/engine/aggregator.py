"""Transaction deduplication and aggregation module."""
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Tuple

from .fingerprint import fingerprint
from .memory import MemorySet
from .models import (
    AggregationBucket,
    AggregationKey,
    AggregationResult,
    Classification,
    SkippedRecord,
    TransactionRecord,
)
from ..utils.exceptions import ValidationError
from ..utils.logger import get_logger

logger = get_logger()

CENT = Decimal("0.01")
# Totals are limited to 15 integer digits so bucket sums still round to cents.
MAX_TOTAL_DIGITS = 15


def validate_record(record: TransactionRecord) -> None:
    """
    Check the fields a record needs to be fingerprinted and summed.

    Raises:
        ValidationError: Describing the first missing field
    """
    if not (record.date_time or "").strip():
        raise ValidationError("missing date/time")
    if record.total is None:
        raise ValidationError("missing or unparseable total")
    if not record.total.is_finite():
        raise ValidationError(f"non-numeric total {record.total}")
    if record.total and record.total.adjusted() >= MAX_TOTAL_DIGITS:
        raise ValidationError(f"total out of range {record.total}")
    if record.quantity is None:
        raise ValidationError("unparseable quantity")


def unit_price(record: TransactionRecord) -> Decimal:
    """Total divided by quantity, truncated toward zero to cents; the total when quantity is 0."""
    if not record.quantity:
        return record.total
    return (record.total / record.quantity).quantize(CENT, rounding=ROUND_DOWN)


def aggregation_key(record: TransactionRecord) -> AggregationKey:
    return AggregationKey(
        sku=(record.sku or "").strip(),
        unit_price=unit_price(record),
        description=(record.description or "").strip(),
        kind=(record.kind or "").strip(),
    )


class Aggregator:
    """Folds records not already in memory into per-key buckets.

    Records are classified in arrival order. A record whose fingerprint is
    in the fingerprint memory contributes nothing, not even a new SKU.
    """

    def __init__(self, fingerprints: MemorySet, skus: MemorySet):
        self.fingerprints = fingerprints
        self.skus = skus
        self.result = AggregationResult()
        self.new_skus: List[str] = []
        self._buckets: Dict[AggregationKey, AggregationBucket] = {}

    def process(self, record: TransactionRecord) -> Classification:
        """
        Classify one record and aggregate it when unseen.

        Args:
            record: Parsed transaction

        Returns:
            NEW, DUPLICATE, or SKIPPED for malformed records
        """
        try:
            validate_record(record)
        except ValidationError as e:
            logger.warning(f"Skipping row {record.line}: {e}")
            self.result.skipped.append(SkippedRecord(line=record.line, reason=str(e)))
            return Classification.SKIPPED

        fp = fingerprint(record)
        if self.fingerprints.contains(fp):
            logger.debug(f"Row {record.line} already recorded ({fp:016x})")
            self.result.duplicate_count += 1
            return Classification.DUPLICATE

        self.fingerprints.insert(fp)
        self.result.new_count += 1

        key = aggregation_key(record)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = AggregationBucket(*key)
            self._buckets[key] = bucket
            self.result.buckets.append(bucket)
        bucket.quantity += record.quantity
        bucket.amount += record.total
        bucket.records += 1

        if key.sku and self.skus.insert(key.sku):
            logger.debug(f"New SKU {key.sku} on row {record.line}")
            self.new_skus.append(key.sku)

        return Classification.NEW


def fold_unlisted(buckets: List[AggregationBucket], placeholder_sku: str) -> List[AggregationBucket]:
    """
    Consolidate buckets that carry no SKU into one row per description and type.

    Fee and adjustment lines have no SKU and their per-unit split is
    meaningless, so their amounts are summed and reported as a single unit
    (-1 for a net debit) under the placeholder SKU.

    Args:
        buckets: Aggregated buckets in first-seen order
        placeholder_sku: SKU written on consolidated rows

    Returns:
        New list; SKU buckets unchanged, unlisted groups at their first position
    """
    folded: List[AggregationBucket] = []
    groups: Dict[Tuple[str, str], AggregationBucket] = {}

    for bucket in buckets:
        if bucket.sku:
            folded.append(bucket)
            continue

        group_key = (bucket.description, bucket.kind)
        group = groups.get(group_key)
        if group is None:
            group = AggregationBucket(
                sku=placeholder_sku,
                unit_price=Decimal(0),
                description=bucket.description,
                kind=bucket.kind,
            )
            groups[group_key] = group
            folded.append(group)
        group.amount += bucket.amount
        group.records += bucket.records

    for group in groups.values():
        group.unit_price = group.amount
        group.quantity = -1 if group.amount < 0 else 1

    if groups:
        logger.debug(f"Folded unlisted rows into {len(groups)} {placeholder_sku} rows")

    return folded
