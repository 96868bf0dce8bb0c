"""Transaction fingerprinting for cross-run deduplication.

A fingerprint is a 64-bit digest of a record's identity fields. It is not
collision resistant: two distinct transactions sharing a digest would be
treated as one (probabilistic exactly-once). Widening the digest, or keeping
the canonical bytes for an exact second check, would remove that risk at the
cost of a larger memory file.
"""
import hashlib
import re
import unicodedata
from decimal import Decimal
from typing import Optional, Union

from .models import TransactionRecord

FIELD_SEPARATOR = "\x1f"
PAIR_SEPARATOR = "\x1e"
DIGEST_SIZE = 8

_WHITESPACE = re.compile(r"\s+")


def canonical_text(value: Optional[str]) -> str:
    """Normalize a text field so formatting noise does not change identity."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFC", str(value))
    return _WHITESPACE.sub(" ", text).strip()


def canonical_number(value: Union[int, Decimal, None]) -> str:
    """Render a number in plain decimal form; 10.50 and 10.5 render alike."""
    if value is None:
        return ""
    number = Decimal(value)
    if number == 0:
        return "0"
    # format() keeps plain notation where str() would switch to exponents
    return format(number.normalize(), "f")


def canonical_bytes(record: TransactionRecord) -> bytes:
    """Return the canonical byte form of a record's identity fields."""
    fields = [
        canonical_text(record.date_time),
        canonical_text(record.kind),
        canonical_text(record.sku),
        canonical_text(record.description),
        canonical_number(record.quantity),
        canonical_number(record.total),
    ]
    extra = PAIR_SEPARATOR.join(
        f"{canonical_text(name).lower()}={canonical_text(value)}"
        for name, value in record.extra
    )
    fields.append(extra)
    return FIELD_SEPARATOR.join(fields).encode("utf-8")


def fingerprint(record: TransactionRecord) -> int:
    """Compute the unsigned 64-bit fingerprint of a record."""
    digest = hashlib.blake2b(canonical_bytes(record), digest_size=DIGEST_SIZE).digest()
    return int.from_bytes(digest, "big")
