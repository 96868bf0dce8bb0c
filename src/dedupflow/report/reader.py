"""Sales report CSV reader."""
import csv
import io
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from ..engine.models import TransactionRecord
from ..utils.exceptions import ReportError
from ..utils.logger import get_logger

logger = get_logger()

# Report header -> TransactionRecord field
COLUMN_ALIASES = {
    "date/time": "date_time",
    "date_time": "date_time",
    "type": "kind",
    "kind": "kind",
    "sku": "sku",
    "description": "description",
    "quantity": "quantity",
    "total": "total",
}


def parse_total(text: str) -> Optional[Decimal]:
    """Parse a money column; None when empty or not a finite number."""
    cleaned = text.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def parse_quantity(text: str) -> Optional[int]:
    """Parse a quantity column; empty means 0, garbage means None."""
    cleaned = text.strip().replace(",", "")
    if not cleaned:
        return 0
    try:
        return int(cleaned)
    except ValueError:
        return None


class ReportReader:
    """Reads transaction rows from a sales report export.

    Exports start with a preamble of free-text rows before the header row,
    and are not guaranteed to be valid UTF-8.
    """

    def __init__(self, skip_rows: int = 7, delimiter: str = ","):
        self.skip_rows = skip_rows
        self.delimiter = delimiter

    def read(self, path: Path) -> Iterator[TransactionRecord]:
        """
        Open a report and return its records.

        Args:
            path: CSV report

        Returns:
            Iterator over records in file order

        Raises:
            ReportError: If the file cannot be read or has no header row.
                Iterating raises it too when a later row is not valid CSV.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ReportError(f"Cannot read report {path}: {e}") from e

        text = raw.decode("utf-8", errors="replace")
        if "\ufffd" in text:
            logger.warning(f"{path.name} contains invalid UTF-8; replaced undecodable bytes")

        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.delimiter)
        rows = ((reader.line_num, row) for row in reader if any(cell.strip() for cell in row))

        try:
            for _ in range(self.skip_rows):
                if next(rows, None) is None:
                    raise ReportError(f"{path.name} ended inside the {self.skip_rows}-row preamble")
            header_row = next(rows, None)
        except csv.Error as e:
            raise ReportError(f"{path.name} is not a readable CSV report: {e}") from e

        if header_row is None:
            raise ReportError(f"{path.name} has no header row")
        header = self._map_header(header_row[1])

        if "total" not in header.values():
            raise ReportError(f"{path.name} header has no total column: {header_row[1]}")

        logger.debug(f"{path.name} header: {header_row[1]}")
        return self._records(path, rows, header)

    def _records(self, path: Path, rows, header: Dict[int, str]) -> Iterator[TransactionRecord]:
        try:
            for line, row in rows:
                yield self._to_record(line, row, header)
        except csv.Error as e:
            raise ReportError(f"{path.name} is not a readable CSV report: {e}") from e

    @staticmethod
    def _map_header(row: List[str]) -> Dict[int, str]:
        """Map column positions to record fields, or to the raw header name."""
        mapping: Dict[int, str] = {}
        for index, name in enumerate(row):
            normalized = name.strip().lower()
            field_name = COLUMN_ALIASES.get(normalized)
            if field_name and field_name not in mapping.values():
                mapping[index] = field_name
            else:
                mapping[index] = f"extra:{name.strip() or f'column_{index + 1}'}"
        return mapping

    @staticmethod
    def _to_record(line: int, row: List[str], header: Dict[int, str]) -> TransactionRecord:
        values: Dict[str, str] = {}
        extra: List[Tuple[str, str]] = []

        for index in range(max(len(row), len(header))):
            cell = row[index] if index < len(row) else ""
            name = header.get(index, f"extra:column_{index + 1}")
            if name.startswith("extra:"):
                extra.append((name[len("extra:"):], cell))
            else:
                values[name] = cell

        return TransactionRecord(
            date_time=values.get("date_time", "").strip(),
            kind=values.get("kind", "").strip(),
            sku=values.get("sku", "").strip(),
            description=values.get("description", "").strip(),
            quantity=parse_quantity(values.get("quantity", "")),
            total=parse_total(values.get("total", "")),
            extra=tuple(extra),
            line=line,
        )
