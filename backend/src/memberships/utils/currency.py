"""Money helpers: every amount in the ledger is an integer number of cents."""
from decimal import Decimal, ROUND_HALF_UP


def prorate_cents(amount: int, numerator: int, denominator: int) -> int:
    """
    Scale an amount in cents by numerator/denominator, rounded half-up to the cent.

    Args:
        amount: Amount in cents
        numerator: Units being valued (e.g. remaining sessions)
        denominator: Units the amount covers (e.g. total sessions)

    Returns:
        Prorated amount in cents

    Examples:
        >>> prorate_cents(10000, 4, 10)
        4000
        >>> prorate_cents(10000, 1, 3)
        3333
    """
    if denominator <= 0:
        return 0
    value = Decimal(amount) * Decimal(numerator) / Decimal(denominator)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(amount: int, symbol: str = "$") -> str:
    """
    Format an amount in cents as a human-readable string.

    Examples:
        >>> format_cents(4000)
        '$40.00'
        >>> format_cents(123456)
        '$1,234.56'
    """
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 100)
    return f"{sign}{symbol}{whole:,}.{cents:02d}"
