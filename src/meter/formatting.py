"""Number and currency formatting for display (pt-BR conventions)."""

import math
from decimal import ROUND_HALF_UP, Decimal

CURRENCY_SYMBOL = "R$"


def round_money(value: float) -> float:
    """Round to 2 decimal places, halves away from zero."""
    if not math.isfinite(value):
        return value
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _to_pt_br(text: str) -> str:
    """Swap English separators (1,234.5) for Brazilian ones (1.234,5)."""
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: float) -> str:
    """Format as Brazilian reais, e.g. R$ 1.234,56."""
    if not math.isfinite(value):
        return f"{CURRENCY_SYMBOL} {value}"
    amount = _to_pt_br(f"{abs(round_money(value)):,.2f}")
    sign = "-" if value < 0 and round_money(value) != 0 else ""
    return f"{sign}{CURRENCY_SYMBOL} {amount}"


def format_number(value: float) -> str:
    """Format with up to 2 decimals and no trailing zeros, e.g. 10.620 or 8,57."""
    if not math.isfinite(value):
        return str(value)
    text = f"{round_money(value):,.2f}"
    text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return _to_pt_br(text)
