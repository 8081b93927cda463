"""Tabs, tab panels and merchandising cards of the plans page."""

from ..adapters.base import Element, NavigableDocument, NotFoundError
from ..config import Config
from ..models import Card, CheckoutUnit, Tab


def _selected(selection: list[str] | None, index: int, title: str) -> bool:
    if not selection:
        return True
    wanted = {item.strip().casefold() for item in selection}
    return str(index) in wanted or title.strip().casefold() in wanted


class TargetTraversal:
    """
    Enumerate tabs and cards on the live page.

    Handles are never reused across navigations: the page may re-render the
    whole subtree, so positions are re-resolved from scratch every time.
    """

    def __init__(self, document: NavigableDocument, config: Config):
        self.document = document
        self.config = config
        self.selectors = config.selectors
        self.timeouts = config.timeouts

    async def list_tabs(self) -> list[Tab]:
        elements = await self.document.query(self.selectors.tabs)
        return [
            Tab(index=i, title=(await element.text()).strip(), element=element)
            for i, element in enumerate(elements)
        ]

    async def activate(self, tab: Tab) -> Element:
        """Switch to a tab and return its visible panel."""
        await tab.element.click(self.timeouts.click_ms)
        await self.document.pause(self.timeouts.settle_ms)

        panel_id = await tab.element.attribute("aria-controls")
        selector = f"#{panel_id}" if panel_id else self.selectors.tab_panel
        return await self.document.wait_for(selector, self.timeouts.element_ms)

    async def list_cards(self, panel: Element) -> list[Card]:
        elements = await panel.query(self.selectors.cards)
        return [await self._read_card(i, element) for i, element in enumerate(elements)]

    async def tab_at(self, index: int) -> Tab:
        tabs = await self.list_tabs()
        if index >= len(tabs):
            raise NotFoundError(f"Tab {index} gone: only {len(tabs)} tabs on the page")
        return tabs[index]

    async def card_at(self, unit: CheckoutUnit) -> Card:
        """Re-resolve a card by position after any navigation."""
        panel = await self.activate(await self.tab_at(unit.tab))
        cards = await self.list_cards(panel)
        if unit.card >= len(cards):
            raise NotFoundError(
                f"Card {unit.card} gone: only {len(cards)} cards in tab {unit.tab}"
            )
        return cards[unit.card]

    def wants_tab(self, tab: Tab) -> bool:
        return _selected(self.config.tabs, tab.index, tab.title)

    def wants_card(self, card: Card) -> bool:
        return _selected(self.config.cards, card.index, card.product_name)

    async def _read_card(self, index: int, element: Element) -> Card:
        name = await element.first(self.selectors.product_name)
        price = await element.first(self.selectors.card_price)
        checkout = await element.first(self.selectors.checkout_link)

        return Card(
            index=index,
            product_name=(await name.text()).strip() if name else "",
            price=(await price.text()).strip() if price else None,
            checkout=checkout,
            element=element,
        )
