"""Tab-separated output for aggregated sales and new SKUs."""
import csv
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional

from ..engine.aggregator import fold_unlisted
from ..engine.controller import RunOutcome
from ..engine.models import AggregationBucket
from ..engine.sku_matcher import SkuMatcher
from ..utils.exceptions import OutputError
from ..utils.logger import get_logger

logger = get_logger()

CENT = Decimal("0.01")
OUTPUT_COLUMNS = ["sku", "unit_price", "quantity", "total", "description", "type"]
NEW_SKU_COLUMNS = ["sku", "closest_known"]


def format_money(value: Decimal) -> str:
    return str(value.quantize(CENT))


def file_timestamp(now: Optional[datetime] = None) -> str:
    """Local ISO timestamp usable in a Windows file name."""
    now = now or datetime.now().astimezone()
    return now.isoformat().replace(":", "_")


class ReportWriter:
    """Writes the files produced by one successful run."""

    def __init__(
        self,
        output_dir: Path,
        delimiter: str = "\t",
        output_prefix: str = "OUTPUT",
        new_sku_prefix: str = "NEW-SKUS",
        placeholder_sku: str = "FBATF",
        sku_matcher: Optional[SkuMatcher] = None
    ):
        self.output_dir = Path(output_dir)
        self.delimiter = delimiter
        self.output_prefix = output_prefix
        self.new_sku_prefix = new_sku_prefix
        self.placeholder_sku = placeholder_sku
        self.sku_matcher = sku_matcher or SkuMatcher()

    def write(self, outcome: RunOutcome, timestamp: Optional[str] = None) -> List[Path]:
        """
        Write the aggregated output and, when there are any, the new SKUs.

        Args:
            outcome: Result of a completed run
            timestamp: File name suffix; defaults to the current local time

        Returns:
            Paths of the files written

        Raises:
            OutputError: If a file cannot be written
        """
        timestamp = timestamp or file_timestamp()
        written = [self.write_aggregation(outcome.result.buckets, timestamp)]

        if outcome.new_skus:
            new = set(outcome.new_skus)
            known = [sku for sku in (outcome.skus or ()) if sku not in new]
            written.append(self.write_new_skus(outcome.new_skus, known, timestamp))

        return written

    def write_aggregation(self, buckets: List[AggregationBucket], timestamp: str) -> Path:
        path = self.output_dir / f"{self.output_prefix}-{timestamp}.tsv"
        rows = [
            [
                bucket.sku,
                format_money(bucket.unit_price),
                str(bucket.quantity),
                format_money(bucket.amount),
                bucket.description,
                bucket.kind,
            ]
            for bucket in fold_unlisted(buckets, self.placeholder_sku)
        ]
        self._write_rows(path, OUTPUT_COLUMNS, rows)
        logger.info(f"Wrote {len(rows)} aggregated rows to {path}")
        return path

    def write_new_skus(self, new_skus: List[str], known: Iterable[str], timestamp: str) -> Path:
        """Write new SKUs in first-seen order with the nearest known SKU, if any."""
        path = self.output_dir / f"{self.new_sku_prefix}-{timestamp}.tsv"
        known = list(known)
        rows = [
            [sku, self.sku_matcher.closest(sku, known) or ""]
            for sku in new_skus
        ]
        self._write_rows(path, NEW_SKU_COLUMNS, rows)
        logger.info(f"Wrote {len(rows)} new SKUs to {path}")
        return path

    def _write_rows(self, path: Path, header: List[str], rows: List[List[str]]) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f, delimiter=self.delimiter, lineterminator="\n")
                writer.writerow(header)
                writer.writerows(rows)
        except OSError as e:
            raise OutputError(f"Failed to write {path}: {e}") from e
