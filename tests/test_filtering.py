from __future__ import annotations

import random

from lead_agent.filtering import REASON_CONFIG_NOT_READY, REASON_NO_KEYWORD, REASON_PASSED, evaluate
from lead_agent.models import RuleSet


def test_qualifying_lead_passes_with_configured_delay(make_lead, rules) -> None:
    verdict = evaluate(make_lead(), rules, rng=random.Random(3))

    assert verdict.passed
    assert verdict.reason == REASON_PASSED
    assert verdict.suggested_delay_minutes in rules.contact_delay_minutes


def test_missing_keyword_rejected(make_lead, rules) -> None:
    lead = make_lead(enquiry_title="Office chairs", requirement="Ergonomic chairs")

    verdict = evaluate(lead, rules)

    assert not verdict.passed
    assert verdict.reason == REASON_NO_KEYWORD


def test_keyword_found_in_requirement_only(make_lead, rules) -> None:
    lead = make_lead(enquiry_title="Shirts", requirement="Cotton UNIFORM shirts")

    assert evaluate(lead, rules).passed


def test_excluded_location_names_indicator(make_lead, rules) -> None:
    verdict = evaluate(make_lead(location="Dubai, UAE"), rules)

    assert verdict.reason == "Excluded location (dubai)"


def test_quantity_not_specified(make_lead, rules) -> None:
    verdict = evaluate(make_lead(quantity=None), rules)

    assert verdict.reason == "Quantity not specified"


def test_quantity_below_threshold(make_lead, rules) -> None:
    verdict = evaluate(make_lead(quantity="50 Piece"), rules)

    assert verdict.reason == "Quantity must be ≥ 100 Piece"


def test_quantity_in_wrong_unit(make_lead, rules) -> None:
    verdict = evaluate(make_lead(quantity="500 Kilogram"), rules)

    assert verdict.reason == "Quantity is not stated in Piece"


def test_category_outside_allow_list(make_lead, rules) -> None:
    verdict = evaluate(make_lead(category="Hospital Scrubs"), rules)

    assert verdict.reason == "Category not in allowed list"


def test_category_match_is_bidirectional_substring(make_lead, rules) -> None:
    assert evaluate(make_lead(category="Uniform"), rules).passed
    assert evaluate(make_lead(category="Kids School Uniform Set"), rules).passed


def test_undeclared_category_is_not_rejected(make_lead, rules) -> None:
    assert evaluate(make_lead(category=None), rules).passed


def test_order_value_below_floor(make_lead, rules) -> None:
    verdict = evaluate(make_lead(value="₹20,000"), rules)

    assert verdict.reason == "Order value < ₹50,000"


def test_unknown_order_value_counts_as_zero(make_lead, rules) -> None:
    verdict = evaluate(make_lead(value="On request"), rules)

    assert not verdict.passed
    assert verdict.reason.startswith("Order value <")


def test_range_uses_lower_bound(make_lead, rules) -> None:
    assert not evaluate(make_lead(value="₹40,000 - ₹90,000"), rules).passed
    assert evaluate(make_lead(value="1 - 2 lakh"), rules).passed


def test_checks_stop_at_first_failure(make_lead, rules) -> None:
    lead = make_lead(location="USA", quantity="5 Piece", value="₹10")

    assert evaluate(lead, rules).reason == "Excluded location (usa)"


def test_missing_rules_yield_transient_rejection(make_lead) -> None:
    verdict = evaluate(make_lead(), None)

    assert not verdict.passed
    assert verdict.transient
    assert verdict.reason == REASON_CONFIG_NOT_READY


def test_evaluation_is_deterministic_apart_from_delay(make_lead, rules) -> None:
    lead = make_lead()
    verdicts = {(v.passed, v.reason) for v in (evaluate(lead, rules, rng=random.Random(seed)) for seed in range(10))}

    assert verdicts == {(True, REASON_PASSED)}


def test_single_delay_option_always_chosen(make_lead) -> None:
    rules = RuleSet(keywords=("uniform",), categories=("uniform",), contact_delay_minutes=(7,))

    assert evaluate(make_lead(), rules).suggested_delay_minutes == 7
