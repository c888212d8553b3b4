"""Display string helpers used by the asset registry."""

from src.models.asset_config import Formatter


def format_number(value: float, decimals: int = 0) -> str:
    """Format with thousands separators and fixed decimals."""
    return f"{value:,.{decimals}f}"


def format_signed(value: float, decimals: int = 0) -> str:
    """Format with an explicit sign; values that round to zero are positive."""
    rounded = round(value, decimals)
    sign = "+" if rounded >= 0 else "-"
    return f"{sign}{format_number(abs(rounded), decimals)}"


def with_unit(decimals: int, unit: str = "", prefix: str = "") -> Formatter:
    """Build a price formatter like ``1,380.50원`` or ``₩1,000``."""

    def formatter(value: float) -> str:
        return f"{prefix}{format_number(value, decimals)}{unit}"

    return formatter


def signed_with_unit(decimals: int, unit: str, scale: float = 1.0) -> Formatter:
    """Build a change-points formatter like ``+12.34pt`` or ``-0.05%p``."""

    def formatter(value: float) -> str:
        return f"{format_signed(value * scale, decimals)}{unit}"

    return formatter
