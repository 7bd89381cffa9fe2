"""
Money rounding shared by the document builder and the services.

Amounts are Decimal end to end (columns are Numeric(38, 9), see db/base.py).
Anything printed on a fiscal document goes through ``round_money`` first.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
