"""Shared fixtures: an in-memory plans page the verifier can drive."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from price_warden.adapters.base import (
    Element,
    InteractionError,
    NavigableDocument,
    NavigationError,
    NotFoundError,
    QueryScope,
)
from price_warden.config import Config, Selectors, Timeouts
from price_warden.models import Target

BASE_URL = "https://shop.example.com/uk/plans.html"
CART_URL = "https://commerce.example.com/store/cart"


@dataclass
class FakeOption:
    """A price option and the cart subtotal that choosing it leads to."""

    price: str
    cart: str | None


@dataclass
class FakeCard:
    """
    One scripted card.

    ``checkout`` is one of ``none``, ``modal``, ``iframe``, ``new_window``,
    ``redirect`` or ``click_fails``.
    """

    name: str
    price: str | None
    checkout: str = "modal"
    options: list[FakeOption] = field(default_factory=list)
    preselected: list[int] = field(default_factory=lambda: [0])
    iframe_src: str = "https://commerce.example.com/modal?offer=1"
    redirect_url: str = "https://commerce.example.com/checkout"
    redirect_text: str = ""


@dataclass
class FakeTab:
    title: str
    cards: list[FakeCard] = field(default_factory=list)
    fails_listing: bool = False


class FakeElement(Element):
    """Element whose children are looked up by selector, lazily where needed."""

    poll_interval_s = 0.01

    def __init__(
        self,
        text: str = "",
        tag: str = "div",
        attrs: dict | None = None,
        children: dict | None = None,
        on_click=None,
        enabled: bool = True,
        frame: QueryScope | None = None,
    ):
        self._text = text
        self._tag = tag
        self._attrs = attrs or {}
        self._children = children or {}
        self._on_click = on_click
        self._enabled = enabled
        self._frame = frame

    async def query(self, selector: str) -> list[Element]:
        found = self._children.get(selector, [])
        return list(found() if callable(found) else found)

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        matches = await self.query(selector)
        if not matches:
            raise NotFoundError(f"Locator '{selector}' not visible after {timeout_ms}ms")
        return matches[0]

    async def click(self, timeout_ms: int) -> None:
        if self._on_click:
            self._on_click()

    async def text(self) -> str:
        return self._text

    async def attribute(self, name: str) -> str | None:
        return self._attrs.get(name)

    async def tag_name(self) -> str:
        return self._tag

    async def is_enabled(self) -> bool:
        return self._enabled

    async def frame(self) -> QueryScope:
        if self._frame is None:
            raise NotFoundError("Element is not an iframe")
        return self._frame

    async def screenshot(self, path: Path) -> None:
        pass


class FakeFrame(QueryScope):
    """Document inside an iframe."""

    def __init__(self, children: dict):
        self._children = children

    async def query(self, selector: str) -> list[Element]:
        found = self._children.get(selector, [])
        return list(found() if callable(found) else found)

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        matches = await self.query(selector)
        if not matches:
            raise NotFoundError(f"Locator '{selector}' not visible after {timeout_ms}ms")
        return matches[0]


class FakeSite:
    """
    Scripted state of the plans page and the pages its checkouts lead to.

    ``page`` is ``plans``, ``cart`` or ``redirect``. Going back always lands
    on the plans page with the checkout modal closed.
    """

    def __init__(self, tabs: list[FakeTab], url: str = BASE_URL):
        self.base_url = url
        self.tabs = tabs
        self.url = url
        self.page = "plans"
        self.active_tab = 0
        self.modal: FakeCard | None = None
        self.selected: set[int] = set()
        self.cart: str | None = None
        self.body = ""
        self.popup: "FakeDocument | None" = None
        self.popups: list[FakeDocument] = []

        self.status = 200
        self.load_failures = 0
        self.loads = 0
        self.clicks: list[str] = []
        self.screenshots: list[Path] = []

        self.console: list[str] = []
        self.links: list[str] = []
        self.link_status: dict[str, int | None] = {}

    # Navigation

    def load(self, url: str) -> int:
        self.loads += 1
        if self.load_failures:
            self.load_failures -= 1
            raise NavigationError("net::ERR_CONNECTION_RESET")
        self.url = url
        self.page = "plans"
        self.active_tab = 0
        self.modal = None
        return self.status

    def back(self) -> None:
        self.url = self.base_url
        self.page = "plans"
        self.modal = None

    # Element tree

    def query(self, selector: str) -> list[Element]:
        if self.page == "cart":
            return self._cart(selector)
        if self.page != "plans":
            return []
        if selector == "tab":
            return [self._tab(i, tab) for i, tab in enumerate(self.tabs)]
        if selector == "panel":
            return [FakeElement(children={"card": self._cards})]
        if selector == "modal" and self.modal is not None:
            return [self._modal(self.modal)]
        return []

    def _tab(self, index: int, tab: FakeTab) -> FakeElement:
        def activate():
            self.active_tab = index
            self.modal = None

        return FakeElement(text=f" {tab.title} ", attrs={"role": "tab"}, on_click=activate)

    def _cards(self) -> list[Element]:
        tab = self.tabs[self.active_tab]
        if tab.fails_listing:
            raise TimeoutError("locator.text_content: Timeout 30000ms exceeded")
        return [self._card(card) for card in tab.cards]

    def _card(self, card: FakeCard) -> FakeElement:
        children = {"name": [FakeElement(text=card.name)]}
        if card.price is not None:
            children["price"] = [FakeElement(text=card.price)]
        if card.checkout != "none":
            children["cta"] = [FakeElement(text="Buy now", on_click=lambda: self._checkout(card))]
        return FakeElement(children=children)

    def _checkout(self, card: FakeCard) -> None:
        self.clicks.append(card.name)
        if card.checkout == "click_fails":
            raise InteractionError("Element is not attached to the DOM")
        if card.checkout in ("modal", "iframe"):
            self.modal = card
            self.selected = set(card.preselected)
        elif card.checkout == "new_window":
            self.popup = FakeDocument(FakeSite([], url=f"{CART_URL}?product={card.name}"))
        elif card.checkout == "redirect":
            self.page = "redirect"
            self.url = card.redirect_url
            self.body = card.redirect_text

    def _modal(self, card: FakeCard) -> FakeElement:
        children = {
            "option": lambda: [
                FakeElement(text=option.price, on_click=lambda i=i: self._select(i))
                for i, option in enumerate(card.options)
            ],
            "selected-option": lambda: [
                FakeElement(text=card.options[i].price) for i in sorted(self.selected)
            ],
            "continue": [FakeElement(text="Continue", on_click=lambda: self._continue(card))],
            "close": [FakeElement(on_click=self._close)],
        }
        if card.checkout == "iframe":
            return FakeElement(tag="iframe", attrs={"src": card.iframe_src}, frame=FakeFrame(children))
        return FakeElement(children=children)

    def _select(self, index: int) -> None:
        self.selected = {index}

    def _continue(self, card: FakeCard) -> None:
        chosen = min(self.selected)
        self.cart = card.options[chosen].cart
        self.page = "cart"
        self.url = CART_URL
        self.modal = None

    def _close(self) -> None:
        self.modal = None

    def _cart(self, selector: str) -> list[Element]:
        if selector == "subtotal" and self.cart is not None:
            return [FakeElement(text=self.cart)]
        return []


class FakeDocument(NavigableDocument):
    """NavigableDocument backed by a FakeSite."""

    poll_interval_s = 0.01

    def __init__(self, site: FakeSite):
        self.site = site
        self.closed = False

    @property
    def url(self) -> str:
        return self.site.url

    async def query(self, selector: str) -> list[Element]:
        return self.site.query(selector)

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        matches = self.site.query(selector)
        if not matches:
            raise NotFoundError(f"Locator '{selector}' not visible after {timeout_ms}ms")
        return matches[0]

    async def goto(self, url: str, timeout_ms: int) -> int | None:
        return self.site.load(url)

    async def reload(self, timeout_ms: int) -> None:
        self.site.load(self.site.url)

    async def go_back(self, timeout_ms: int) -> None:
        self.site.back()

    async def wait_for_new_document(self, timeout_ms: int) -> NavigableDocument | None:
        await asyncio.sleep(0)
        popup, self.site.popup = self.site.popup, None
        if popup is not None:
            self.site.popups.append(popup)
        return popup

    async def close(self) -> None:
        self.closed = True

    async def body_text(self) -> str:
        return self.site.body

    async def screenshot(self, path: Path, full_page: bool = False) -> None:
        self.site.screenshots.append(path)

    async def pause(self, ms: int) -> None:
        pass

    def console_errors(self) -> list[str]:
        return list(self.site.console)

    async def links(self) -> list[str]:
        return list(self.site.links)

    async def head(self, url: str) -> int:
        status = self.site.link_status.get(url, 200)
        if status is None:
            raise NavigationError(f"request to {url} failed")
        return status


TEST_SELECTORS = Selectors(
    ready=None,
    tabs="tab",
    tab_panel="panel",
    cards="card",
    product_name="name",
    card_price="price",
    checkout_link="cta",
    checkout_modal="modal",
    price_options="option",
    selected_price_option="selected-option",
    continue_button="continue",
    modal_close="close",
    cart_subtotal="subtotal",
    cart_total="total",
    cart_total_next="next-total",
)

TEST_TIMEOUTS = Timeouts(
    navigation_ms=50,
    element_ms=50,
    click_ms=50,
    new_window_ms=50,
    cart_ms=50,
    settle_ms=0,
    checkout_settle_ms=0,
    load_attempts=2,
    load_backoff_s=0,
)


@pytest.fixture
def config(tmp_path):
    """Config wired to the fake site's selectors, writing under tmp_path."""
    return Config(
        target_url=BASE_URL,
        retries=0,
        state_dir=tmp_path / "state",
        report_dir=tmp_path / "reports",
        selectors=TEST_SELECTORS,
        timeouts=TEST_TIMEOUTS,
    )


@pytest.fixture
def target(config):
    return Target.from_url(config.target_url, config.country)


@pytest.fixture
def make_site():
    """Build a site plus the document the verifier drives."""

    def _make(*tabs: FakeTab) -> tuple[FakeSite, FakeDocument]:
        site = FakeSite(list(tabs))
        return site, FakeDocument(site)

    return _make


@pytest.fixture
def monthly_annual():
    """A modal card whose options both land on a matching cart."""
    return FakeCard(
        name="Creative Cloud All Apps",
        price="£56.98/mo",
        options=[
            FakeOption("£56.98/mo", "£56.98"),
            FakeOption("£656.33/yr", "£656.33"),
        ],
    )
