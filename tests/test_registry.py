from __future__ import annotations

from lead_agent.registry import LeadRegistry
from lead_agent.storage import SKIPPED_LEADS_KEY, JsonFileStore


def test_processed_leads_are_known(store) -> None:
    registry = LeadRegistry(store)

    assert registry.mark_processed("a")
    assert not registry.mark_processed("a")
    assert registry.has("a")
    assert registry.is_processed("a")
    assert not registry.is_skipped("a")
    assert registry.processed_count == 1


def test_processed_set_is_not_persisted(store) -> None:
    LeadRegistry(store).mark_processed("a")

    assert not LeadRegistry(store).has("a")


def test_skipped_leads_survive_restart(tmp_path) -> None:
    path = tmp_path / "agent.json"
    registry = LeadRegistry(JsonFileStore(path))
    assert registry.mark_skipped("b")
    assert not registry.mark_skipped("b")

    restarted = LeadRegistry(JsonFileStore(path))

    assert restarted.is_skipped("b")
    assert restarted.has("b")
    assert restarted.skipped_count == 1


def test_skip_list_written_sorted(store) -> None:
    registry = LeadRegistry(store)
    registry.mark_skipped("z")
    registry.mark_skipped("a")

    assert store.get(SKIPPED_LEADS_KEY) == ["a", "z"]


def test_clear_processed_keeps_skips(store) -> None:
    registry = LeadRegistry(store)
    registry.mark_processed("a")
    registry.mark_skipped("b")

    registry.clear_processed()

    assert not registry.has("a")
    assert registry.has("b")
