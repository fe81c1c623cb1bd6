from __future__ import annotations

from lead_agent.logstore import ContactHistory, LogStore, cycle_signature, render_blocks
from lead_agent.models import LeadEvaluation, Verdict
from lead_agent.storage import CONTACT_SUCCESS_KEY, LAST_SIGNATURE_KEY


def _evaluations(leads, passed_ids):
    return [
        LeadEvaluation(lead, Verdict(lead.lead_id in passed_ids, "Meets all criteria" if lead.lead_id in passed_ids else "No required keyword found"))
        for lead in leads
    ]


def test_identical_cycles_are_logged_once(store, clock, make_lead) -> None:
    log_store = LogStore(store, clock=clock)
    leads = [make_lead(i) for i in range(3)]
    evaluations = _evaluations(leads, {"lead-0"})

    assert log_store.record_cycle(3, leads[:1], evaluations, source_url="https://portal.example/leads")
    clock.advance(30)
    assert not log_store.record_cycle(3, leads[:1], evaluations, source_url="https://portal.example/leads")

    assert len(log_store.summaries()) == 1
    assert len(log_store.lead_logs()) == 1
    assert store.get(LAST_SIGNATURE_KEY) == cycle_signature(3, leads[:1], evaluations)


def test_changed_cycle_is_appended(store, clock, make_lead) -> None:
    log_store = LogStore(store, clock=clock)
    leads = [make_lead(i) for i in range(2)]

    log_store.record_cycle(2, leads[:1], _evaluations(leads, {"lead-0"}))
    log_store.record_cycle(2, leads, _evaluations(leads, {"lead-0", "lead-1"}))

    assert len(log_store.summaries()) == 2


def test_rings_drop_oldest_entries(store, clock, make_lead) -> None:
    log_store = LogStore(store, max_summaries=2, max_lead_logs=3, clock=clock)
    for total in range(1, 6):
        leads = [make_lead(i) for i in range(total)]
        log_store.record_cycle(total, [], _evaluations(leads, set()))

    summaries = log_store.summaries()
    assert len(summaries) == 2
    assert "Total leads: 5" in summaries[-1]
    assert "Total leads: 4" in summaries[0]
    assert len(log_store.lead_logs()) == 3


def test_summary_and_detail_content(store, clock, make_lead) -> None:
    log_store = LogStore(store, clock=clock)
    qualified = make_lead(0, company_name="Acme Schools")
    rejected = make_lead(1, location="Dubai")
    evaluations = [
        LeadEvaluation(qualified, Verdict(True, "Meets all criteria", 5)),
        LeadEvaluation(rejected, Verdict(False, "Excluded location (dubai)")),
    ]

    log_store.record_cycle(2, [qualified], evaluations, source_url="https://portal.example/leads")

    summary = log_store.summaries()[0]
    assert "Filtered (qualified) leads: 1" in summary
    assert "Rejected leads: 1" in summary
    assert "Company: Acme Schools" in summary
    assert "URL: https://portal.example/leads" in summary

    details = log_store.lead_logs()[0]
    assert "[PASS] Acme Schools" in details
    assert "[REJECT]" in details
    assert "Reason: Excluded location (dubai)" in details
    assert "Quantity: 500 (500 Piece)" in details


def test_large_amounts_use_grouped_digits(store, clock, make_lead) -> None:
    log_store = LogStore(store, clock=clock)
    lead = make_lead(0, quantity="2000000 Piece", value="15 lakh - 20 lakh")

    log_store.record_cycle(1, [lead], [LeadEvaluation(lead, Verdict(True, "Meets all criteria", 1))])

    details = log_store.lead_logs()[0]
    assert "Quantity: 2,000,000 (2000000 Piece)" in details
    assert "Order Value: ₹1,500,000 - ₹2,000,000" in details
    assert "e+" not in details


def test_clear_resets_signature(store, clock, make_lead) -> None:
    log_store = LogStore(store, clock=clock)
    leads = [make_lead(0)]
    log_store.record_cycle(1, [], _evaluations(leads, set()))

    log_store.clear()

    assert log_store.summaries() == []
    assert log_store.record_cycle(1, [], _evaluations(leads, set()))


def test_contact_history_dedupes_and_caps(store, clock, make_lead) -> None:
    history = ContactHistory(store, max_entries=3, clock=clock)
    for position in range(4):
        history.record_success(make_lead(position))
    history.record_success(make_lead(2))

    ids = [entry.lead_id for entry in history.entries()]
    assert ids == ["lead-1", "lead-3", "lead-2"]
    assert len(store.get(CONTACT_SUCCESS_KEY)) == 3


def test_contact_history_entry_fields(store, clock, make_lead) -> None:
    entry = ContactHistory(store, clock=clock).record_success(make_lead(0, value="5 - 8 lakh"))

    assert entry.company_name == "Company 0"
    assert entry.probable_value == "5 - 8 lakh"
    assert entry.contacted_at.startswith("2023-11-14")


def test_render_blocks_separates_with_blank_line() -> None:
    assert render_blocks(["a", "b"]) == "a\n\nb"
