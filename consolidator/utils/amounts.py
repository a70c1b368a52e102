# consolidator/utils/amounts.py
"""
Exact conversions between raw integer amounts (smallest unit) and the
decimal strings shown to users. No floats are involved in either direction.
"""

from consolidator.core.constants import LAMPORTS_PER_SOL


def format_ui_amount(raw_amount: int, decimals: int) -> str:
    """
    Formats ``raw_amount`` with ``decimals`` fractional digits, trailing zeros
    removed: ``format_ui_amount(500000, 6) == "0.5"``.
    """
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    sign = "-" if raw_amount < 0 else ""
    whole, frac = divmod(abs(int(raw_amount)), 10 ** decimals)
    if decimals == 0 or frac == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_str}"


def parse_ui_amount(ui_amount: str, decimals: int) -> int:
    """Inverse of ``format_ui_amount``. Rejects more precision than ``decimals``."""
    text = ui_amount.strip().replace(",", "")
    if not text:
        raise ValueError("empty amount")
    negative = text.startswith("-")
    if negative or text.startswith("+"):
        text = text[1:]
    whole, _, frac = text.partition(".")
    if not (whole or frac) or (whole and not whole.isdigit()) or (frac and not frac.isdigit()):
        raise ValueError(f"not a decimal amount: {ui_amount!r}")
    frac = frac.rstrip("0")
    if len(frac) > decimals:
        raise ValueError(f"{ui_amount!r} has more than {decimals} decimal places")
    raw = int(whole or "0") * 10 ** decimals + int(frac.ljust(decimals, "0") or "0")
    return -raw if negative else raw


def lamports_to_sol_str(lamports: int) -> str:
    return format_ui_amount(lamports, 9)


def sol_to_lamports(sol: str) -> int:
    return parse_ui_amount(str(sol), 9)


def lamports_to_sol(lamports: int) -> float:
    """Display-only float conversion."""
    return lamports / LAMPORTS_PER_SOL
