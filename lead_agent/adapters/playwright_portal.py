"""Playwright backed adapter for a B2B lead marketplace's lead listing page.

Prerequisites
-------------
* Requires :mod:`playwright` with Chromium installed (``playwright install``).
* The portal needs a logged-in session. Point ``user_data_dir`` at a browser
  profile that is already signed in, and run headful the first time so a
  human can complete the login.
* Playwright's sync API is bound to the thread that started it, so every
  browser call is funnelled through a single worker thread.
"""
from __future__ import annotations

import contextlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..models import Lead
from .base import ActionKind, BrowserAdapterConfig
from .cards import capacity_exhausted_in, lead_from_fields, rejection_in, sanitize

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PortalSelectors:
    """CSS selectors describing the portal's markup. Each entry is tried in order."""

    lead_cards: Tuple[str, ...] = (
        "div[data-card-type='lead']",
        "[data-testid*='lead']",
        ".lead-card",
        ".blk-txn-card",
    )
    lead_id: Tuple[str, ...] = ("input[name='ofrid']", "input[id^='ofrid']", "input[name^='gridParam']")
    title: Tuple[str, ...] = ("h1", "h2", "h3", ".bl-title", ".enquiry-title")
    company: Tuple[str, ...] = ("p.bl-compNm", ".company-name", ".buyer-name")
    requirement: Tuple[str, ...] = ("p.bl-enq-comp", ".requirement")
    location: Tuple[str, ...] = ("li[title='Location'] span", ".location")
    city: Tuple[str, ...] = (".lstNwLftLoc .city_click",)
    state: Tuple[str, ...] = (".lstNwLftLoc .state_click",)
    timestamp: Tuple[str, ...] = ("input[name='offerdate']", "li[title='Date'] span", "time", ".date")
    quantity: Tuple[str, ...] = (".bl-qty", "li[title='Quantity']")
    category: Tuple[str, ...] = ("li[title='I am interested in']", ".bl-interest", ".bl-category a")
    fabric: Tuple[str, ...] = ("li[title='Fabric'] span", "[class*='fabric']")
    order_value: Tuple[str, ...] = ("li[title='Probable Order Value']", ".bl-order-value", ".probable-order")
    contact_button_text: str = "Contact Buyer Now"
    send_button: Tuple[str, ...] = (
        ".btn-latest",
        ".btnCBNContainer .btnCBN1",
        "[data-action='send-reply']",
        "button[id*='SendReply']",
        "button[class*='sendReply']",
        "button[aria-label*='send reply' i]",
        ".leadReplyBtn",
    )
    message_field: Tuple[str, ...] = ("textarea", "[contenteditable='true']", "input[type='text']")
    success: Tuple[str, ...] = (
        ".toast-success",
        ".alert-success",
        ".thankyou-msg",
        ".msg-sent",
        ".message-sent",
        "[data-testid='reply-success']",
    )
    error: Tuple[str, ...] = (".error-message", ".validation-error", "[role='alert']", ".toast-error", ".alert-danger")
    load_more: Tuple[str, ...] = ("button.load-more", "button.loadMore", ".loadMoreBtn", ".view-more", "a.load-more")

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "PortalSelectors":
        values: Dict[str, Any] = {}
        known = {item.name for item in fields(cls)}
        for key, value in (data or {}).items():
            if key not in known:
                LOGGER.warning("Ignoring unknown selector '%s'", key)
                continue
            values[key] = value if isinstance(value, str) else tuple(value)
        return cls(**values)


@dataclass
class PortalConfig(BrowserAdapterConfig):
    """Extends :class:`BrowserAdapterConfig` with the portal location and markup."""

    url: str = ""
    selectors: PortalSelectors = field(default_factory=PortalSelectors)
    scroll_attempts: int = 8
    scroll_delay_seconds: float = 1.2


_FIELD_NAMES = (
    "lead_id",
    "title",
    "company",
    "requirement",
    "location",
    "city",
    "state",
    "timestamp",
    "quantity",
    "category",
    "fabric",
    "order_value",
)


class PlaywrightPortal:
    """Implements the extraction, action and launcher interfaces against a live page."""

    def __init__(self, config: Optional[PortalConfig | Dict[str, Any]] = None) -> None:
        if isinstance(config, dict):
            options = dict(config)
            options["selectors"] = PortalSelectors.from_mapping(options.get("selectors"))
            config = PortalConfig(**options)
        self.config = config or PortalConfig()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="playwright")
        self._playwright = None
        self._context = None
        self._browser = None
        self._page = None

    # -- lifecycle ------------------------------------------------------
    def open_surface(self) -> bool:
        if not self.config.url:
            LOGGER.error("No portal URL configured")
            return False
        try:
            self._call(self._open)
        except PlaywrightError:
            LOGGER.exception("Failed to open %s", self.config.url)
            return False
        return True

    def close(self) -> None:
        with contextlib.suppress(PlaywrightError):
            self._call(self._close)
        self._executor.shutdown(wait=True)

    @property
    def source_url(self) -> Optional[str]:
        return self._page.url if self._page is not None else self.config.url or None

    # -- ExtractionAdapter ----------------------------------------------
    def extract_leads(self) -> List[Lead]:
        return self._call(self._extract_leads)

    def ensure_minimum(self, count: int) -> int:
        return self._call(self._ensure_minimum, count)

    def refresh(self) -> None:
        self._call(lambda: self._require_page().reload(wait_until="domcontentloaded"))
        LOGGER.info("Portal page reloaded")

    # -- ActionAdapter --------------------------------------------------
    def locate_action(self, kind: ActionKind, context: Any = None) -> Optional[Any]:
        return self._call(self._locate, kind, context)

    def invoke(self, handle: Any) -> None:
        self._call(self._click, handle)

    def get_field_value(self, handle: Any) -> str:
        return self._call(lambda: handle.evaluate("el => el.value ?? el.textContent ?? ''") or "")

    def set_field_value(self, handle: Any, text: str) -> None:
        self._call(handle.fill, text)

    def poll_for_confirmation(self, timeout_ms: int) -> bool:
        return self._call(self._poll_confirmation, timeout_ms)

    def detect_rejection(self) -> Optional[str]:
        return self._call(self._detect_rejection)

    def capacity_exhausted(self) -> bool:
        return self._call(lambda: capacity_exhausted_in(self._body_text()))

    # ------------------------------------------------------------------
    def _call(self, function: Callable[..., T], *args: Any) -> T:
        return self._executor.submit(function, *args).result()

    def _open(self) -> None:
        if self._page is not None:
            self._page.bring_to_front()
            return
        self._playwright = sync_playwright().start()
        chromium = self._playwright.chromium
        if self.config.user_data_dir:
            self._context = chromium.launch_persistent_context(
                self.config.user_data_dir, headless=self.config.headless
            )
        else:
            self._browser = chromium.launch(headless=self.config.headless)
            self._context = self._browser.new_context()
        self._context.set_default_navigation_timeout(self.config.navigation_timeout * 1000)
        self._page = self._context.pages[0] if self._context.pages else self._context.new_page()
        self._page.goto(self.config.url, wait_until="domcontentloaded")
        LOGGER.info("Opened portal at %s", self._page.url)

    def _close(self) -> None:
        for resource in (self._context, self._browser):
            if resource is not None:
                with contextlib.suppress(PlaywrightError):
                    resource.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._playwright = self._context = self._browser = self._page = None

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Portal surface is not open")
        return self._page

    def _cards(self) -> List[Any]:
        page = self._require_page()
        seen: List[Any] = []
        for selector in self.config.selectors.lead_cards:
            for card in page.query_selector_all(selector):
                if not any(card == existing for existing in seen):
                    seen.append(card)
        return seen

    def _first_text(self, card: Any, selectors: Tuple[str, ...]) -> Optional[str]:
        for selector in selectors:
            element = card.query_selector(selector)
            if element is None:
                continue
            if element.evaluate("el => el.tagName") == "INPUT":
                value = sanitize(element.get_attribute("value"))
            else:
                value = sanitize(element.text_content())
            if value:
                return value
        return None

    def _extract_leads(self) -> List[Lead]:
        leads: List[Lead] = []
        selectors = self.config.selectors
        for position, card in enumerate(self._cards()):
            values = {name: self._first_text(card, getattr(selectors, name)) for name in _FIELD_NAMES}
            data_id = card.get_attribute("data-lead-id")
            if data_id:
                values["lead_id"] = data_id
            leads.append(lead_from_fields(values, position, card.inner_text()))
        LOGGER.debug("Extracted %s leads", len(leads))
        return leads

    def _ensure_minimum(self, count: int) -> int:
        page = self._require_page()
        current = len(self._cards())
        attempts = 0
        while current < count and attempts < self.config.scroll_attempts:
            attempts += 1
            if not self._click_load_more():
                page.mouse.wheel(0, 5000)
            page.wait_for_timeout(self.config.scroll_delay_seconds * 1000)
            previous, current = current, len(self._cards())
            LOGGER.debug("Load attempt %s: %s/%s cards", attempts, current, count)
            if current <= previous:
                break
        return current

    def _click_load_more(self) -> bool:
        page = self._require_page()
        for selector in self.config.selectors.load_more:
            button = page.query_selector(selector)
            if button is not None and button.is_visible() and not button.get_attribute("aria-disabled"):
                button.click()
                return True
        return False

    def _locate(self, kind: ActionKind, context: Any) -> Optional[Any]:
        selectors = self.config.selectors
        if kind is ActionKind.LEAD_CARD:
            cards = self._cards()
            index = int(context)
            return cards[index] if 0 <= index < len(cards) else None
        if kind is ActionKind.CONTACT_BUTTON:
            root = context if context is not None else self._require_page()
            button = root.query_selector(f"text={selectors.contact_button_text}")
            return button if button is not None and button.is_visible() else None
        candidates = selectors.message_field if kind is ActionKind.MESSAGE_FIELD else selectors.send_button
        return self._first_visible(candidates)

    def _first_visible(self, candidates: Tuple[str, ...]) -> Optional[Any]:
        page = self._require_page()
        for selector in candidates:
            for element in page.query_selector_all(selector):
                if element.is_visible():
                    return element
        return None

    def _click(self, handle: Any) -> None:
        try:
            handle.scroll_into_view_if_needed()
            handle.click()
        except PlaywrightError:
            LOGGER.debug("Native click failed; dispatching a DOM click")
            handle.evaluate("el => el.click()")

    def _poll_confirmation(self, timeout_ms: int) -> bool:
        page = self._require_page()
        success = ", ".join(self.config.selectors.success)
        try:
            page.wait_for_selector(success, state="visible", timeout=max(timeout_ms, 1))
            return True
        except PlaywrightTimeoutError:
            pass
        return self._first_visible(self.config.selectors.send_button) is None and self._first_visible(
            self.config.selectors.message_field
        ) is None

    def _detect_rejection(self) -> Optional[str]:
        texts = []
        for selector in self.config.selectors.error:
            element = self._first_visible((selector,))
            if element is not None:
                texts.append(element.text_content())
        return rejection_in(texts)

    def _body_text(self) -> str:
        with contextlib.suppress(PlaywrightError):
            return self._require_page().inner_text("body")
        return ""


__all__ = ["PlaywrightPortal", "PortalConfig", "PortalSelectors"]
