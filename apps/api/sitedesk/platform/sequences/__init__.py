from sitedesk.platform.sequences.errors import SequenceAllocationError
from sitedesk.platform.sequences.formatters import (
    ParsedIdentifier,
    fallback_change_order_code,
    format_change_order_code,
    format_inquiry_number,
    format_invoice_number,
    format_quote_number,
    legacy_quote_number,
    parse_identifier,
)
from sitedesk.platform.sequences.numbering import NumberingService
from sitedesk.platform.sequences.service import (
    AtomicSequenceStrategy,
    CountBasedStrategy,
    SequenceAllocator,
    build_inquiry_strategy,
)

__all__ = [
    "SequenceAllocationError",
    "ParsedIdentifier",
    "fallback_change_order_code",
    "format_change_order_code",
    "format_inquiry_number",
    "format_invoice_number",
    "format_quote_number",
    "legacy_quote_number",
    "parse_identifier",
    "NumberingService",
    "AtomicSequenceStrategy",
    "CountBasedStrategy",
    "SequenceAllocator",
    "build_inquiry_strategy",
]
