"""Display helpers. Amounts are shown in whole rupiah with dot grouping."""


def format_currency(value: float, symbol: str = "Rp") -> str:
    """
    Format *value* as e.g. ``Rp 5.000.000`` (zero decimals).

    Negative amounts keep the sign in front of the symbol: ``-Rp 1.500``.
    """
    amount = round(value or 0)
    grouped = f"{abs(amount):,}".replace(",", ".")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol} {grouped}"
