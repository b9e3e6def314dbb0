"""Compact magnitude formatting for market figures."""

import math

# Largest threshold first
_MAGNITUDES = (
    (1_000_000_000_000.0, "T"),
    (1_000_000_000.0, "B"),
    (1_000_000.0, "M"),
    (1_000.0, "K"),
)


def _abbreviate(value: float) -> str:
    for threshold, suffix in _MAGNITUDES:
        if value >= threshold:
            return _two_decimals(value / threshold) + suffix
    return _two_decimals(value)


def _two_decimals(value: float) -> str:
    text = f"{round(value, 2):,.2f}"
    return text.rstrip("0").rstrip(".")


def format_number_short(value: float | None) -> str:
    """
    Abbreviate a large number (e.g. 19_000_000 -> "19M").

    Args:
        value: Number to format

    Returns:
        Compact string; "0" for missing, non-positive or non-finite values
    """
    if value is None or not math.isfinite(value) or value <= 0:
        return "0"
    return _abbreviate(value)


def format_money_short(value: float | None) -> str:
    """
    Abbreviate a currency amount (e.g. 1_500 -> "$1.5K").

    Args:
        value: Amount in currency units

    Returns:
        Compact string prefixed with "$"; "$0" for missing, non-positive or non-finite values
    """
    if value is None or not math.isfinite(value) or value <= 0:
        return "$0"
    return "$" + _abbreviate(value)
