"""
Money formatting helpers. Amounts are stored in minor units (cents).
"""
from typing import Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def format_currency(cents: Optional[int], currency: str = "USD") -> str:
    """format_currency(1999, "USD") -> "$19.99"."""
    currency = (currency or "USD").upper()
    cents = cents or 0
    if currency in ZERO_DECIMAL_CURRENCIES:
        amount = f"{cents:,}"
    else:
        amount = f"{cents / 100:,.2f}"

    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol is None:
        return f"{amount} {currency}"
    if cents < 0:
        return f"-{symbol}{amount.lstrip('-')}"
    return f"{symbol}{amount}"
