"""
Quote totals — net lines, subtotal, VAT and gross for a printable offer.

  line net  = qty × unit_price_net × (1 − discount_pct / 100)
  subtotal  = Σ line net
  VAT       = subtotal × tax_rate / 100
  gross     = subtotal + VAT

Positions (``pos``) only order the printed table; gaps and duplicates have
no effect on any sum. Percentages are not range-checked here.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from projectdesk.config import DEFAULT_TAX_RATE_PCT
from projectdesk.services.aggregation_engine import ZERO, HUNDRED, field, to_decimal


@dataclass
class QuoteTotals:
    subtotal_net: Decimal
    tax_rate_pct: Decimal
    vat_amount: Decimal
    gross_total: Decimal


def line_net(item: Any) -> Decimal:
    qty = to_decimal(field(item, "qty"))
    price = to_decimal(field(item, "unit_price_net"))
    discount = to_decimal(field(item, "discount_pct"))
    return qty * price * (1 - discount / HUNDRED)


def subtotal_net(items: Iterable[Any]) -> Decimal:
    return sum((line_net(it) for it in items), ZERO)


def vat_amount(subtotal: Any, tax_rate_pct: Any) -> Decimal:
    return to_decimal(subtotal) * to_decimal(tax_rate_pct) / HUNDRED


def gross_total(subtotal: Any, vat: Any) -> Decimal:
    return to_decimal(subtotal) + to_decimal(vat)


def resolve_tax_rate(tax_rate: Any = None) -> Decimal:
    """Header rate when present, the configured default otherwise."""
    if tax_rate is None:
        return DEFAULT_TAX_RATE_PCT
    return to_decimal(tax_rate)


def compute_quote_totals(items: Iterable[Any], tax_rate: Any = None) -> QuoteTotals:
    rate = resolve_tax_rate(tax_rate)
    net = subtotal_net(items)
    vat = vat_amount(net, rate)
    return QuoteTotals(
        subtotal_net=net,
        tax_rate_pct=rate,
        vat_amount=vat,
        gross_total=gross_total(net, vat),
    )


# ---------------------------------------------------------------------------
# Display ordering
# ---------------------------------------------------------------------------

def _created_key(item: Any) -> str:
    created = field(item, "created_at")
    if created is None:
        return ""
    if isinstance(created, datetime):
        return created.isoformat()
    return str(created)


def display_position(item: Any, index: int) -> int:
    """The stored ``pos``, or the 1-based row index when none is set."""
    pos = field(item, "pos")
    if pos is None:
        return index + 1
    return int(to_decimal(pos))


def ordered_items(items: Iterable[Any]) -> List[Any]:
    """Items by position, then creation time. Unpositioned items sort last."""
    return sorted(
        items,
        key=lambda it: (
            field(it, "pos") is None,
            to_decimal(field(it, "pos")),
            _created_key(it),
        ),
    )


def next_position(items: List[Any]) -> int:
    """Position for a newly appended line: the last line's position + 1."""
    if not items:
        return 1
    last: Optional[Any] = field(items[-1], "pos")
    return int(to_decimal(last)) + 1
