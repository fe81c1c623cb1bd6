from __future__ import annotations

from typing import Dict, List, Optional

import pytest

pytest.importorskip("playwright.sync_api")

from lead_agent.adapters.base import ActionKind  # noqa: E402
from lead_agent.adapters.playwright_portal import PlaywrightPortal, PortalConfig, PortalSelectors  # noqa: E402


class FakeElement:
    def __init__(
        self,
        text: str = "",
        *,
        tag: str = "DIV",
        attributes: Optional[Dict[str, str]] = None,
        children: Optional[Dict[str, "FakeElement"]] = None,
        visible: bool = True,
    ) -> None:
        self.text = text
        self.tag = tag
        self.attributes = attributes or {}
        self.children = children or {}
        self.visible = visible
        self.clicks = 0

    def query_selector(self, selector: str) -> Optional["FakeElement"]:
        return self.children.get(selector)

    def query_selector_all(self, selector: str) -> List["FakeElement"]:
        child = self.children.get(selector)
        return [child] if child is not None else []

    def evaluate(self, expression: str):
        if "tagName" in expression:
            return self.tag
        if "click" in expression:
            self.clicks += 1
        return None

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def text_content(self) -> str:
        return self.text

    def inner_text(self) -> str:
        return self.text

    def is_visible(self) -> bool:
        return self.visible

    def scroll_into_view_if_needed(self) -> None:
        pass

    def click(self) -> None:
        self.clicks += 1


class FakePage(FakeElement):
    def __init__(self, cards: List[FakeElement], body: str = "", **kwargs) -> None:
        super().__init__(body, **kwargs)
        self.cards = cards
        self.url = "https://portal.example/bl/leads"

    def query_selector_all(self, selector: str) -> List[FakeElement]:
        if selector == PortalSelectors().lead_cards[0]:
            return list(self.cards)
        return super().query_selector_all(selector)

    def inner_text(self, selector: str = "body") -> str:
        return self.text


def _card() -> FakeElement:
    contact = FakeElement("Contact Buyer Now", tag="BUTTON")
    return FakeElement(
        "School uniform\nQuantity: 500 Piece\nFabric: Poly Cotton",
        children={
            "input[name='ofrid']": FakeElement(tag="INPUT", attributes={"value": "77123"}),
            "h2": FakeElement("School uniform"),
            "p.bl-compNm": FakeElement("Green Valley School"),
            ".lstNwLftLoc .city_click": FakeElement("Pune"),
            ".lstNwLftLoc .state_click": FakeElement("Maharashtra"),
            "li[title='Probable Order Value']": FakeElement("₹1 Lakh"),
            "text=Contact Buyer Now": contact,
        },
    )


@pytest.fixture
def portal():
    adapter = PlaywrightPortal({"url": "https://portal.example/bl/leads", "headless": True, "selectors": {"title": ["h2"]}})
    yield adapter
    adapter.close()


def test_config_from_mapping(portal) -> None:
    assert isinstance(portal.config, PortalConfig)
    assert portal.config.selectors.title == ("h2",)
    assert portal.config.selectors.contact_button_text == "Contact Buyer Now"
    assert portal.source_url == "https://portal.example/bl/leads"


def test_open_surface_requires_url() -> None:
    adapter = PlaywrightPortal()
    try:
        assert not adapter.open_surface()
    finally:
        adapter.close()


def test_calls_before_open_raise(portal) -> None:
    with pytest.raises(RuntimeError, match="not open"):
        portal.extract_leads()


def test_extracts_leads_from_cards(portal) -> None:
    portal._page = FakePage([_card()])

    (lead,) = portal.extract_leads()

    assert lead.lead_id == "77123"
    assert lead.company_name == "Green Valley School"
    assert lead.enquiry_title == "School uniform"
    assert lead.location == "Pune, Maharashtra"
    assert lead.quantity.value == 500
    assert lead.probable_value.minimum == 100_000
    assert lead.fabric == "Poly Cotton"


def test_locates_card_and_contact_button(portal) -> None:
    card = _card()
    portal._page = FakePage([card])

    located = portal.locate_action(ActionKind.LEAD_CARD, 0)
    button = portal.locate_action(ActionKind.CONTACT_BUTTON, located)
    portal.invoke(button)

    assert located is card
    assert button.clicks == 1
    assert portal.locate_action(ActionKind.LEAD_CARD, 3) is None


def test_detects_rejection_and_capacity(portal) -> None:
    error = FakeElement("This lead has already been purchased")
    portal._page = FakePage([], body="BuyLead Balance: 0", children={".error-message": error})

    assert portal.detect_rejection() == "This lead has already been purchased"
    assert portal.capacity_exhausted()
