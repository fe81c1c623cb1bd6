"""Browser independent helpers for turning lead-card text into :class:`Lead` records."""
from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional

from ..models import Lead
from ..parsing import parse_magnitude_value, parse_quantity

CAPACITY_EXHAUSTED_PATTERNS = (
    re.compile(r"buylead\s+balance\s*:?\s*0(?!\d)", re.IGNORECASE),
    re.compile(r"buy\s*lead\s*balance\s*:?\s*0(?!\d)", re.IGNORECASE),
    re.compile(r"buy\s*leads\s*balance\s*:?\s*0(?!\d)", re.IGNORECASE),
)

REJECTION_PATTERNS = (
    re.compile(r"already\s+(?:been\s+)?(?:purchased|consumed|sold)", re.IGNORECASE),
    re.compile(r"no\s+longer\s+available", re.IGNORECASE),
    re.compile(r"lead\s+(?:has\s+)?expired", re.IGNORECASE),
)

_WHITESPACE = re.compile(r"\s+")


def sanitize(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become ``None``."""

    if value is None:
        return None
    cleaned = _WHITESPACE.sub(" ", str(value)).strip()
    return cleaned or None


def labelled_value(text: Optional[str], label: str) -> Optional[str]:
    """Return the value following ``label:`` on the same line of ``text``."""

    if not text:
        return None
    match = re.search(rf"{re.escape(label)}\s*[:\-]?\s*([^\n]+)", text, re.IGNORECASE)
    return sanitize(match.group(1)) if match else None


def capacity_exhausted_in(text: Optional[str]) -> bool:
    return bool(text) and any(pattern.search(text) for pattern in CAPACITY_EXHAUSTED_PATTERNS)


def rejection_in(texts: Iterable[Optional[str]]) -> Optional[str]:
    """Return the first text that reads like a remote refusal."""

    for text in texts:
        cleaned = sanitize(text)
        if cleaned and any(pattern.search(cleaned) for pattern in REJECTION_PATTERNS):
            return cleaned
    return None


def lead_from_fields(fields: Mapping[str, Optional[str]], position: int, card_text: Optional[str] = None) -> Lead:
    """Build a :class:`Lead` from the raw strings found on one card.

    Missing quantity and order value fields fall back to ``Quantity:`` and
    ``Probable Order Value:`` labels in the card's full text.
    """

    title = sanitize(fields.get("title"))
    requirement = sanitize(fields.get("requirement")) or title or "No requirement specified."
    enquiry_title = title or requirement
    timestamp = sanitize(fields.get("timestamp")) or "N/A"

    quantity_text = sanitize(fields.get("quantity")) or labelled_value(card_text, "Quantity")
    value_text = sanitize(fields.get("order_value")) or labelled_value(card_text, "Probable Order Value")

    location = sanitize(fields.get("location"))
    if not location:
        location = ", ".join(part for part in (sanitize(fields.get("city")), sanitize(fields.get("state"))) if part)

    return Lead(
        lead_id=Lead.build_id(sanitize(fields.get("lead_id")), position, enquiry_title, timestamp),
        company_name=sanitize(fields.get("company")) or "N/A",
        enquiry_title=enquiry_title,
        requirement=requirement,
        location=location or "N/A",
        timestamp_raw=timestamp,
        quantity=parse_quantity(quantity_text),
        category=sanitize(fields.get("category")),
        fabric=sanitize(fields.get("fabric")) or labelled_value(card_text, "Fabric"),
        probable_value=parse_magnitude_value(value_text),
        source_position=position,
    )


__all__ = [
    "CAPACITY_EXHAUSTED_PATTERNS",
    "REJECTION_PATTERNS",
    "capacity_exhausted_in",
    "labelled_value",
    "lead_from_fields",
    "rejection_in",
    "sanitize",
]
