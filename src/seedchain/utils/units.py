"""Exact conversion between decimal amount strings and integer base units.

Amounts never pass through float.
"""

from decimal import Decimal, InvalidOperation, localcontext


def to_base_units(amount: str, decimals: int) -> int:
    """Convert a decimal string ("0.01") to an integer in the smallest unit.

    Raises:
        ValueError: If the amount is not a finite, non-negative number or
            has more fractional digits than the unit allows.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")

    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount!r}")

    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + decimals + 2)
        try:
            scaled = value.scaleb(decimals)
        except ArithmeticError:
            raise ValueError(f"Amount out of range: {amount!r}")
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount!r} has more than {decimals} decimal places")

    return int(scaled)


def format_units(amount: int, decimals: int) -> str:
    """Format an integer amount in the smallest unit as a decimal string."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(amount))) + 2)
        value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
