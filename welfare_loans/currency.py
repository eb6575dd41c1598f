"""Currency helpers for Ghana cedi amounts.

Every amount in the ledger is a ``Decimal`` in cedis. Stored figures are
rounded to pesewas (two decimal places) with ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY_SYMBOL = "₵"
CURRENCY_CODE = "GHC"

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Amounts at or below this are treated as settled
SETTLEMENT_TOLERANCE = Decimal("0.01")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a numeric value to ``Decimal`` without float artefacts.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a currency amount: {value!r}") from exc


def round_currency(value: Decimal | int | float | str) -> Decimal:
    """Round an amount to two decimal places (half up)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(
    amount: Decimal | int | float,
    show_symbol: bool = True,
    decimals: int = 2,
) -> str:
    """Format an amount with thousands separators, e.g. ``₵1,234.56``."""
    quantum = Decimal(1).scaleb(-decimals)
    value = to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)
    formatted = f"{value:,.{decimals}f}"
    return f"{CURRENCY_SYMBOL}{formatted}" if show_symbol else formatted


def format_currency_for_input(amount: Decimal | int | float) -> str:
    """Format an amount for input fields (no symbol)."""
    return format_currency(amount, show_symbol=False)


def parse_currency(text: str) -> Decimal:
    """Parse a formatted amount such as ``"₵1,234.56"``.

    Returns zero for text that does not contain a number.
    """
    cleaned = text.replace(CURRENCY_SYMBOL, "").replace(",", "").strip()
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return ZERO


def format_currency_abbreviated(amount: Decimal | int | float) -> str:
    """Format large amounts with K/M/B suffixes, e.g. ``₵1.5M``."""
    value = to_decimal(amount)
    for threshold, suffix in (
        (Decimal(1_000_000_000), "B"),
        (Decimal(1_000_000), "M"),
        (Decimal(1_000), "K"),
    ):
        if value >= threshold:
            scaled = (value / threshold).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            return f"{CURRENCY_SYMBOL}{scaled}{suffix}"
    return format_currency(value)
