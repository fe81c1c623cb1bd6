"""Deterministic rule evaluation for scraped leads."""
from __future__ import annotations

import logging
import random
from typing import Optional

from .models import Lead, RuleSet, Verdict

LOGGER = logging.getLogger(__name__)

REASON_CONFIG_NOT_READY = "Filter configuration not loaded"
REASON_NO_KEYWORD = "No required keyword found"
REASON_PASSED = "Meets all criteria"


def _matches_keyword(lead: Lead, rules: RuleSet) -> bool:
    haystack = f"{lead.enquiry_title or ''} {lead.requirement or ''}".lower()
    return any(keyword.lower() in haystack for keyword in rules.keywords if keyword)


def _excluded_location(lead: Lead, rules: RuleSet) -> Optional[str]:
    location = (lead.location or "").lower()
    for indicator in rules.excluded_locations:
        if indicator and indicator.lower() in location:
            return indicator
    return None


def _quantity_failure(lead: Lead, rules: RuleSet) -> Optional[str]:
    unit = rules.quantity_unit.strip()
    unit_label = unit.capitalize()
    value = lead.quantity.value
    if value is None:
        return "Quantity not specified"
    if value < rules.min_quantity:
        return f"Quantity must be ≥ {rules.min_quantity:g} {unit_label}".rstrip()
    if unit and unit.lower() not in (lead.quantity.raw or "").lower():
        return f"Quantity is not stated in {unit_label}"
    return None


def _category_allowed(lead: Lead, rules: RuleSet) -> bool:
    category = (lead.category or "").strip().lower()
    if not category:
        return True
    return any(allowed in category or category in allowed for allowed in rules.category_set)


def evaluate(lead: Lead, rules: Optional[RuleSet], *, rng: Optional[random.Random] = None) -> Verdict:
    """Classify ``lead`` against ``rules``.

    Checks run cheapest first and stop at the first failure:

    1. a required keyword appears in the title or requirement text
    2. the location matches no excluded location
    3. the quantity meets the threshold and mentions the configured unit
    4. a declared category matches the allow-list
    5. the probable value meets the configured floor

    A passing lead receives a contact delay picked from the configured delay
    options. ``rules=None`` yields a transient rejection so the lead is
    re-evaluated once configuration has loaded.
    """

    if rules is None:
        return Verdict(passed=False, reason=REASON_CONFIG_NOT_READY, transient=True)

    try:
        if not _matches_keyword(lead, rules):
            return Verdict(passed=False, reason=REASON_NO_KEYWORD)

        excluded = _excluded_location(lead, rules)
        if excluded is not None:
            return Verdict(passed=False, reason=f"Excluded location ({excluded})")

        quantity_failure = _quantity_failure(lead, rules)
        if quantity_failure is not None:
            return Verdict(passed=False, reason=quantity_failure)

        if not _category_allowed(lead, rules):
            return Verdict(passed=False, reason="Category not in allowed list")

        if lead.probable_value.floor() < rules.min_order_value:
            return Verdict(
                passed=False,
                reason=f"Order value < {rules.currency_symbol}{rules.min_order_value:,.0f}",
            )
    except Exception:  # pragma: no cover - evaluation must never raise
        LOGGER.exception("Unexpected error while evaluating lead %s", lead.lead_id)
        return Verdict(passed=False, reason="Evaluation error", transient=True)

    chooser = rng or random
    delay = chooser.choice(rules.contact_delay_minutes) if rules.contact_delay_minutes else 0
    return Verdict(passed=True, reason=REASON_PASSED, suggested_delay_minutes=int(delay))


__all__ = ["REASON_CONFIG_NOT_READY", "REASON_NO_KEYWORD", "REASON_PASSED", "evaluate"]
