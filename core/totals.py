"""
Invoice totals calculator.

Pure and deterministic: identical inputs always render byte-identical
strings, and nothing here touches shared state. Line amounts are computed
in an exact decimal context so no digits are lost before the final
currency rounding.
"""

from decimal import Context, Decimal, MAX_EMAX, MAX_PREC, MIN_EMIN, localcontext
from typing import Iterable, Protocol

from core.currency import format_money
from core.models.invoice import InvoiceTotals

# Only multiplication, addition and quantize run under this context, all of
# which are exact at MAX_PREC
EXACT_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


class PricedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal


def line_amount(item: PricedLine) -> Decimal:
    """Unrounded amount of one line: unit_price * quantity."""
    with localcontext(EXACT_CONTEXT):
        return item.unit_price * item.quantity


def sum_line_amounts(items: Iterable[PricedLine]) -> Decimal:
    """Unrounded subtotal of all lines."""
    with localcontext(EXACT_CONTEXT):
        return sum((line_amount(item) for item in items), Decimal(0))


def compute_totals(items: Iterable[PricedLine], currency: str) -> InvoiceTotals:
    """
    Compute invoice totals rounded to the currency's precision.

    Args:
        items: Line items exposing Decimal quantity and unit_price
        currency: Currency code, any case (unknown codes round to 2 digits)

    Returns:
        InvoiceTotals with subtotal and total as fixed-point strings.
        An empty item list yields zero at the currency's precision ("0.00").
    """
    subtotal = sum_line_amounts(items)
    total = subtotal

    with localcontext(EXACT_CONTEXT):
        return InvoiceTotals(
            subtotal=format_money(subtotal, currency),
            total=format_money(total, currency),
        )
