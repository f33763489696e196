"""
Pricing breakdown under discount, per-line tax and shipping rules.

This is a separate pricing-rules component. Canonical invoice totals come
from core.totals.compute_totals; the figures here are only returned by the
explicit breakdown operation.
"""

from decimal import Context, Decimal, ROUND_HALF_EVEN, localcontext
from typing import Iterable, Protocol

from core.currency import format_money
from core.models.invoice import DiscountType, InvoiceBreakdown
from core.totals import EXACT_CONTEXT, line_amount

# Only the two divisions (percentage, discount ratio) run under this bounded
# context. Everything else runs exact, so magnitude never limits the result.
_RATIO = Context(prec=50, rounding=ROUND_HALF_EVEN)

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)


class TaxedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal | None


def compute_discount(
    subtotal: Decimal,
    discount_type: DiscountType | str | None,
    discount_value: Decimal | None,
) -> Decimal:
    """
    Unrounded discount amount, never more than the subtotal.

    Percentage discounts take discount_value percent of the subtotal; fixed
    discounts take discount_value as-is. Missing type or value means no discount.
    """
    if discount_type is None or discount_value is None:
        return _ZERO

    if DiscountType(discount_type) == DiscountType.PERCENTAGE:
        with localcontext(_RATIO):
            fraction = discount_value / _HUNDRED
        with localcontext(EXACT_CONTEXT):
            discount = subtotal * fraction
    else:
        discount = discount_value

    return min(discount, subtotal)


def compute_breakdown(
    items: Iterable[TaxedLine],
    currency: str,
    discount_type: DiscountType | str | None = None,
    discount_value: Decimal | None = None,
    shipping_amount: Decimal | None = None,
    shipping_tax_rate: Decimal | None = None,
) -> InvoiceBreakdown:
    """
    Compute the full pricing breakdown for an invoice.

    The discount is spread over lines pro rata before per-line tax is applied.
    total = subtotal - discount + line tax + shipping tax + shipping.
    Every figure is rounded half-up to the currency's precision independently.
    """
    items = list(items)
    lines = [line_amount(item) for item in items]

    with localcontext(EXACT_CONTEXT):
        subtotal = sum(lines, _ZERO)

    discount_total = compute_discount(subtotal, discount_type, discount_value)

    if subtotal.is_zero():
        discount_ratio = _ZERO
    else:
        with localcontext(_RATIO):
            discount_ratio = discount_total / subtotal

    with localcontext(EXACT_CONTEXT):
        line_tax_total = _ZERO
        for item, amount in zip(items, lines):
            discounted = amount - amount * discount_ratio
            line_tax_total += discounted * (item.tax_rate or _ZERO)

        shipping = shipping_amount or _ZERO
        shipping_tax = shipping * (shipping_tax_rate or _ZERO)

        tax_total = line_tax_total + shipping_tax
        total = subtotal - discount_total + tax_total + shipping

        return InvoiceBreakdown(
            subtotal=format_money(subtotal, currency),
            discount_total=format_money(discount_total, currency),
            tax_total=format_money(tax_total, currency),
            shipping_total=format_money(shipping, currency),
            shipping_tax=format_money(shipping_tax, currency),
            total=format_money(total, currency),
        )
