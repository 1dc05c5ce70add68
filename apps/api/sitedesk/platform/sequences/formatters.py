"""Human-readable identifier formats.

These strings are parsed by external systems, so the layouts are fixed:
``INQ-YYYY-NNNNNN``, ``INV-NNNNNN``, ``QUO-NNNNNN`` and ``CO-NNNNNN`` (or
``CO-<epoch ms>`` when no sequence value could be allocated). Sequences wider
than six digits are written in full rather than truncated.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from datetime import datetime

INQUIRY_PREFIX = "INQ"
INVOICE_PREFIX = "INV"
QUOTE_PREFIX = "QUO"
CHANGE_ORDER_PREFIX = "CO"

_PREFIX_RE = re.compile(r"^[A-Z]+$")
_DIGITS_RE = re.compile(r"^\d+$")


@dataclass(slots=True, frozen=True)
class ParsedIdentifier:
    prefix: str
    year: int | None
    sequence: int


def _check_sequence(sequence: int) -> None:
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0:
        raise ValueError(f"sequence must be a non-negative integer, got {sequence!r}")


def format_inquiry_number(year: int, sequence: int) -> str:
    _check_sequence(sequence)
    if not 0 <= year <= 9999:
        raise ValueError(f"year must have at most four digits, got {year!r}")
    return f"{INQUIRY_PREFIX}-{year:04d}-{sequence:06d}"


def format_invoice_number(sequence: int) -> str:
    _check_sequence(sequence)
    return f"{INVOICE_PREFIX}-{sequence:06d}"


def format_quote_number(sequence: int) -> str:
    _check_sequence(sequence)
    return f"{QUOTE_PREFIX}-{sequence:06d}"


def format_change_order_code(sequence: int) -> str:
    _check_sequence(sequence)
    return f"{CHANGE_ORDER_PREFIX}-{sequence:06d}"


def fallback_change_order_code(now_ms: int) -> str:
    return f"{CHANGE_ORDER_PREFIX}-{int(now_ms)}"


def legacy_quote_number(now: datetime, rng: random.Random | None = None) -> str:
    """Pre-sequence quote layout ``Q{yy}{mm}{4 digits}``, kept as a last-resort fallback."""

    suffix = (rng or random).randint(0, 9999)
    return f"Q{now.year % 100:02d}{now.month:02d}{suffix:04d}"


def parse_identifier(value: str) -> ParsedIdentifier:
    parts = value.split("-")
    if len(parts) == 3:
        prefix, year_part, sequence_part = parts
        if not _DIGITS_RE.match(year_part) or len(year_part) != 4:
            raise ValueError(f"invalid year in identifier {value!r}")
        year: int | None = int(year_part)
    elif len(parts) == 2:
        prefix, sequence_part = parts
        year = None
    else:
        raise ValueError(f"malformed identifier {value!r}")

    if not _PREFIX_RE.match(prefix):
        raise ValueError(f"invalid prefix in identifier {value!r}")
    if not _DIGITS_RE.match(sequence_part):
        raise ValueError(f"invalid sequence in identifier {value!r}")
    return ParsedIdentifier(prefix=prefix, year=year, sequence=int(sequence_part))
