"""Numeric and locale-aware parsing helpers for scraped lead fields.

Magnitude words are resolved per number: a token is scaled by the magnitude
word directly following it ("5 lakh"), and an unscaled token that opens a
range takes the scale of the next scaled token ("5 - 8 lakh") unless that would
put the lower bound above the upper one ("50,000 to 1 lakh"). A bare number
that follows a scaled one stays unscaled ("1 lakh or 150000").
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .models import MagnitudeValue, Quantity

LAKH = 100_000
CRORE = 10_000_000

_CURRENCY = re.compile(r"(?:\brs\.?|\binr\b|₹)", re.IGNORECASE)
_NUMBER_WITH_SCALE = re.compile(
    r"(?P<number>\d[\d,]*(?:\.\d+)?)(?![\d,])\s*(?:(?P<scale>crores?|cr|lakhs?|lacs?|lac|l)(?![a-z]))?",
    re.IGNORECASE,
)
_RANGE_JOINER = re.compile(r"^\s*(?:-|–|—|to)\s*$", re.IGNORECASE)
_QUANTITY = re.compile(r"(?P<number>\d[\d,]*(?:\.\d+)?)\s*(?P<unit>[A-Za-z][A-Za-z.]*)?")


def _scale_for(word: Optional[str]) -> Optional[int]:
    if not word:
        return None
    lowered = word.lower()
    if lowered.startswith("cr"):
        return CRORE
    return LAKH


def _to_number(token: str) -> Optional[float]:
    try:
        return float(token.replace(",", ""))
    except ValueError:
        return None


def _normalise_number(value: float) -> float:
    return float(int(value)) if value.is_integer() else value


def parse_magnitude_value(text: Optional[str]) -> MagnitudeValue:
    """Parse a probable order value such as ``"₹1,20,000"`` or ``"5 lakh - 8 lakh"``."""

    if text is None:
        return MagnitudeValue()
    raw = text.strip()
    if not raw:
        return MagnitudeValue()

    cleaned = _CURRENCY.sub(" ", raw)
    tokens: List[Tuple[float, Optional[int], int, int]] = []
    for match in _NUMBER_WITH_SCALE.finditer(cleaned):
        number = _to_number(match.group("number"))
        if number is None:
            continue
        tokens.append((number, _scale_for(match.group("scale")), match.start(), match.end()))

    if not tokens:
        return MagnitudeValue(raw=raw)

    values: List[float] = []
    for index, (number, scale, _start, end) in enumerate(tokens):
        if scale is None and index + 1 < len(tokens):
            next_number, next_scale, next_start, _ = tokens[index + 1]
            if (
                next_scale is not None
                and number <= next_number
                and _RANGE_JOINER.match(cleaned[end:next_start])
            ):
                scale = next_scale
        values.append(_normalise_number(number * (scale or 1)))

    return MagnitudeValue(raw=raw, minimum=values[0], maximum=values[-1])


def parse_quantity(text: Optional[str]) -> Quantity:
    """Parse ``"500 Piece"`` into its numeric value and unit word."""

    if text is None:
        return Quantity()
    raw = text.strip()
    if not raw:
        return Quantity()

    match = _QUANTITY.search(raw)
    if not match:
        return Quantity(raw=raw)
    value = _to_number(match.group("number"))
    unit = match.group("unit")
    return Quantity(
        raw=raw,
        value=_normalise_number(value) if value is not None else None,
        unit=unit.rstrip(".").lower() if unit else None,
    )


def format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_value_range(value: MagnitudeValue, currency_symbol: str = "₹") -> Optional[str]:
    """Return a display string for a probable value."""

    if value.raw:
        return value.raw
    low, high = value.minimum, value.maximum
    if low is not None and high is not None:
        if low == high:
            return f"{currency_symbol}{format_amount(low)}"
        return f"{currency_symbol}{format_amount(low)} – {currency_symbol}{format_amount(high)}"
    if low is not None:
        return f"{currency_symbol}{format_amount(low)}+"
    if high is not None:
        return f"Up to {currency_symbol}{format_amount(high)}"
    return None


__all__ = ["CRORE", "LAKH", "format_amount", "format_value_range", "parse_magnitude_value", "parse_quantity"]
