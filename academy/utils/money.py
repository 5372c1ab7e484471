"""
Money formatting for human-readable insight texts.

Usage:
    from academy.utils.money import format_money

    format_money(15000, "KWD")     -> "15,000 KD"
    format_money(1200.50, "USD")   -> "1,201 USD"
"""
from decimal import Decimal

_CURRENCY_SUFFIX = {
    "KWD": "KD",
}


def currency_label(code: str) -> str:
    return _CURRENCY_SUFFIX.get(code, code)


def format_money(amount, currency: str = "KWD", decimals: int = 0) -> str:
    """
    Format an amount with thousands separators and a currency suffix.

    Args:
        amount: int / float / Decimal / str
        currency: ISO currency code
        decimals: digits after the decimal point

    Returns:
        "15,000 KD" / "1,201 USD"
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    return f"{fmt.format(amount)} {currency_label(currency)}"
