"""Data models for the deduplication engine."""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple


@dataclass(frozen=True)
class TransactionRecord:
    """One parsed row of a sales report."""
    date_time: str
    kind: str = ""
    sku: str = ""
    description: str = ""
    quantity: Optional[int] = 0  # None when the report value was unparseable
    total: Optional[Decimal] = None  # None when missing or unparseable
    extra: Tuple[Tuple[str, str], ...] = ()  # remaining report columns, in order
    line: int = 0  # source row number, not part of identity


class Classification(Enum):
    """Outcome of processing one record."""
    NEW = "new"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


class AggregationKey(NamedTuple):
    """Records sharing a key are summed into one output row."""
    sku: str
    unit_price: Decimal
    description: str
    kind: str


@dataclass
class AggregationBucket:
    """Running totals for one aggregation key."""
    sku: str
    unit_price: Decimal
    description: str
    kind: str
    quantity: int = 0
    amount: Decimal = field(default_factory=Decimal)
    records: int = 0

    @property
    def key(self) -> AggregationKey:
        return AggregationKey(self.sku, self.unit_price, self.description, self.kind)


@dataclass
class SkippedRecord:
    """A record excluded from aggregation."""
    line: int
    reason: str


@dataclass
class AggregationResult:
    """Buckets in first-seen key order plus per-run counters."""
    buckets: List[AggregationBucket] = field(default_factory=list)
    new_count: int = 0
    duplicate_count: int = 0
    skipped: List[SkippedRecord] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def total_amount(self) -> Decimal:
        return sum((b.amount for b in self.buckets), Decimal(0))
