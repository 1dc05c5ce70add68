from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from sitedesk.platform.sequences.errors import SequenceAllocationError
from sitedesk.platform.sequences.formatters import (
    INQUIRY_PREFIX,
    fallback_change_order_code,
    format_change_order_code,
    format_inquiry_number,
    format_invoice_number,
    format_quote_number,
    legacy_quote_number,
)
from sitedesk.platform.sequences.service import NumberStrategy, SequenceAllocator, build_inquiry_strategy


logger = logging.getLogger("sitedesk.sequences")

INVOICE_SEQUENCE = "invoice_number"
QUOTE_SEQUENCE = "quote_number"
CHANGE_ORDER_SEQUENCE = "change_order_code"


def inquiry_sequence_name(year: int) -> str:
    return f"inquiry_number_{year}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NumberingService:
    """Mints business identifiers from named counters.

    Every counter advance commits on its own, so numbers consumed by a business
    transaction that later rolls back are skipped rather than handed out again.
    Inquiry and invoice numbers must be exact, so allocator failures propagate
    and the caller's transaction rolls back. Quote numbers and change-order
    codes fall back to time-based values instead.

    ``join_transaction=True`` advances the counters inside the caller's session;
    the fallbacks then run under a savepoint so a failed allocation leaves the
    caller's transaction usable.
    """

    def __init__(
        self,
        allocator: SequenceAllocator | None = None,
        inquiry_strategy: NumberStrategy | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
        join_transaction: bool = False,
    ) -> None:
        self.allocator = allocator or SequenceAllocator()
        self._inquiry_strategy = inquiry_strategy
        self._clock = clock
        self._rng = rng
        self.join_transaction = join_transaction

    @property
    def inquiry_strategy(self) -> NumberStrategy:
        if self._inquiry_strategy is None:
            self._inquiry_strategy = build_inquiry_strategy(allocator=self.allocator, join_transaction=self.join_transaction)
        return self._inquiry_strategy

    def _next(self, session: Session, name: str) -> int:
        return self.allocator.get_next_sequence(name, session=session, join_transaction=self.join_transaction)

    def _next_with_fallback(self, session: Session, name: str) -> int:
        if not self.join_transaction:
            return self._next(session, name)
        with session.begin_nested():
            return self._next(session, name)

    def generate_inquiry_number(self, session: Session, year: int | None = None) -> str:
        resolved_year = year if year is not None else self._clock().year
        prefix = f"{INQUIRY_PREFIX}-{resolved_year:04d}-"
        sequence = self.inquiry_strategy.next_value(session, inquiry_sequence_name(resolved_year), prefix)
        return format_inquiry_number(resolved_year, sequence)

    def generate_invoice_number(self, session: Session) -> str:
        return format_invoice_number(self._next(session, INVOICE_SEQUENCE))

    def generate_quote_number(self, session: Session) -> str:
        try:
            return format_quote_number(self._next_with_fallback(session, QUOTE_SEQUENCE))
        except SequenceAllocationError as exc:
            logger.warning("quote_number_fallback", extra={"sequence_name": QUOTE_SEQUENCE, "error": str(exc)})
            return legacy_quote_number(self._clock(), self._rng)

    def generate_change_order_code(self, session: Session) -> str:
        try:
            return format_change_order_code(self._next_with_fallback(session, CHANGE_ORDER_SEQUENCE))
        except SequenceAllocationError as exc:
            logger.warning("change_order_code_fallback", extra={"sequence_name": CHANGE_ORDER_SEQUENCE, "error": str(exc)})
            return fallback_change_order_code(int(self._clock().timestamp() * 1000))
