"""Number formatting for KPI cards, tooltips and info banners."""

import math

_SI_PREFIXES = ["y", "z", "a", "f", "p", "n", "µ", "m", "", "k", "M", "G", "T", "P", "E", "Z", "Y"]


def format_si(value: float, digits: int = 3) -> str:
    """
    Round to ``digits`` significant digits with an SI prefix.

    format_si(1.5e9, 2) -> '1.5G', format_si(1234, 2) -> '1.2k'
    """
    if value is None or not math.isfinite(value):
        return "N/A"
    mantissa, exp = f"{value:.{digits - 1}e}".split("e")
    exponent = int(exp)
    group = min(max(exponent // 3, -8), 8)
    shift = exponent - 3 * group
    scaled = float(mantissa) * 10 ** shift
    decimals = max(0, digits - 1 - shift)
    return f"{scaled:.{decimals}f}{_SI_PREFIXES[group + 8]}"


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up: 1800.5 -> 1801, -0.5 -> 0."""
    return math.floor(value + 0.5)


def format_population(value: float) -> str:
    return format_si(value, 2)


def format_capacity(value: float) -> str:
    return format_si(value, 1)


def format_gdp(value: float) -> str:
    return f"${value:,.0f}"


def format_decimal(value: float) -> str:
    return f"{value:.1f}"


def format_number(value: float) -> str:
    return f"{value:,.0f}"
