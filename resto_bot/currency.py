"""Rupiah amounts are stored as integers and shown as ``Rp25.000``."""


def format_rupiah(amount: int) -> str:
    return "Rp" + f"{int(amount):,}".replace(",", ".")
