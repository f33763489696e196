"""
Currency precision table and money rounding.

Money is always decimal.Decimal. Rounding is half-up (halfway values move
away from zero) to the currency's conventional number of fraction digits.
"""

from decimal import Decimal, ROUND_HALF_UP

ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})

THREE_DECIMAL_CURRENCIES = frozenset({
    "BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND",
})

DEFAULT_FRACTION_DIGITS = 2


def normalize_currency(currency: str) -> str:
    """Uppercase a currency code for lookup, storage and display."""
    return currency.strip().upper()


def get_currency_fraction_digits(currency: str) -> int:
    """
    Number of fraction digits used by a currency.

    Unknown codes get the ISO default of 2.
    """
    code = normalize_currency(currency)
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return DEFAULT_FRACTION_DIGITS


def round_to_currency(amount: Decimal, currency: str) -> Decimal:
    """Round half-up to the currency's fraction digits."""
    exponent = Decimal(1).scaleb(-get_currency_fraction_digits(currency))
    rounded = amount.quantize(exponent, rounding=ROUND_HALF_UP)
    # -0.00 is not a displayable amount
    if rounded.is_zero():
        return rounded.copy_abs()
    return rounded


def format_money(amount: Decimal, currency: str) -> str:
    """Round and render as a fixed-point string, e.g. "30.02", "32", "12.346"."""
    return f"{round_to_currency(amount, currency):f}"
