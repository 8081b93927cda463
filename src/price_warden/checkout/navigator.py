"""Drive one card's checkout affordance and classify where it leads."""

import asyncio
from contextlib import suppress
from pathlib import Path

from rich.console import Console

from ..adapters.base import (
    DocumentError,
    NavigableDocument,
    NotFoundError,
    QueryScope,
)
from ..config import Config
from ..models import (
    Card,
    CartTotal,
    CheckoutSurface,
    ClickFailed,
    InPageModal,
    NewWindow,
    PriceOption,
    Redirect,
    Target,
)

console = Console()


class CheckoutNavigator:
    """
    Activate checkout links and normalise the outcome.

    What a checkout link does depends on product, locale and A/B state, so
    the outcome is observed after the click rather than configured:
    a new browsing context is a ``NewWindow``, staying on the target is an
    ``InPageModal`` and anything else is a ``Redirect``.
    """

    def __init__(self, document: NavigableDocument, target: Target, config: Config):
        self.document = document
        self.target = target
        self.selectors = config.selectors
        self.timeouts = config.timeouts
        self.screenshot_dir = config.screenshot_dir

    async def invoke_checkout(self, card: Card, label: str = "") -> CheckoutSurface | ClickFailed:
        """Click a card's checkout link; never raises for a failed click."""
        if card.checkout is None:
            return ClickFailed(reason="Card has no checkout link")

        watcher = asyncio.ensure_future(
            self.document.wait_for_new_document(self.timeouts.new_window_ms)
        )
        try:
            await card.checkout.click(self.timeouts.click_ms)
        except DocumentError as e:
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher
            return ClickFailed(reason=str(e))

        new_document = await watcher
        if new_document is not None:
            return await self._capture_new_window(new_document, label)

        await self.document.pause(self.timeouts.settle_ms)
        url = self.document.url
        if self.target.owns(url):
            return await self.open_modal()

        await self.document.pause(self.timeouts.checkout_settle_ms)
        return Redirect(url=url, page_text=await self.document.body_text())

    async def open_modal(self) -> InPageModal:
        """Resolve the checkout panel, whether inline or inside an iframe."""
        container = await self.document.wait_for(
            self.selectors.checkout_modal, self.timeouts.element_ms
        )

        source = None
        scope: QueryScope = container
        if await container.tag_name() == "iframe":
            source = await container.attribute("src") or ""
            scope = await container.frame()

        await scope.wait_for(self.selectors.price_options, self.timeouts.element_ms)
        await scope.wait_for(self.selectors.continue_button, self.timeouts.element_ms)

        selected = [
            (await e.text()).strip()
            for e in await scope.query(self.selectors.selected_price_option)
        ]
        options = []
        for index, element in enumerate(await scope.query(self.selectors.price_options)):
            price = (await element.text()).strip()
            options.append(PriceOption(index=index, price=price, selected=price in selected))

        async def continue_action() -> None:
            await self._continue(scope)

        async def close_action() -> None:
            await self._close(scope)

        return InPageModal(
            scope=scope,
            options=options,
            selected=selected,
            continue_action=continue_action,
            close_action=close_action,
            source=source,
        )

    async def choose_option(self, modal: InPageModal, index: int) -> None:
        options = await modal.scope.query(self.selectors.price_options)
        if index >= len(options):
            raise NotFoundError(f"Price option {index} gone: only {len(options)} in modal")
        await options[index].click(self.timeouts.click_ms)
        await self.document.pause(self.timeouts.settle_ms)

    async def continue_to_cart(self, modal: InPageModal) -> None:
        await modal.continue_action()

    async def close_modal(self, modal: InPageModal) -> None:
        if await self.modal_visible():
            await modal.close_action()

    async def read_cart(self) -> CartTotal:
        """Wait for the cart and read whichever total fields it shows."""
        fields = {
            "subtotal": self.selectors.cart_subtotal,
            "total": self.selectors.cart_total,
            "next_total": self.selectors.cart_total_next,
        }
        configured = [s for s in fields.values() if s]
        await self.document.wait_for_any(configured, self.timeouts.cart_ms)

        values = {}
        for name, selector in fields.items():
            element = await self.document.first(selector) if selector else None
            values[name] = (await element.text()).strip() if element else None
        return CartTotal(**values)

    async def modal_visible(self) -> bool:
        return await self.document.first(self.selectors.checkout_modal) is not None

    async def go_back(self) -> None:
        await self.document.go_back(self.timeouts.navigation_ms)
        await self.document.pause(self.timeouts.settle_ms)

    async def leave_redirect(self) -> bool:
        """Go back from a redirect; False when that did not land on the target."""
        await self.go_back()
        return self.target.owns(self.document.url)

    async def screenshot(self, name: str, full_page: bool = False) -> None:
        if self.screenshot_dir:
            await self.document.screenshot(Path(self.screenshot_dir) / f"{name}.png", full_page)

    async def _continue(self, scope: QueryScope) -> None:
        button = await scope.wait_for(self.selectors.continue_button, self.timeouts.element_ms)
        await button.wait_until_enabled(self.timeouts.element_ms)
        await button.click(self.timeouts.click_ms)
        await self.document.pause(self.timeouts.checkout_settle_ms)

    async def _close(self, scope: QueryScope) -> None:
        button = await self.document.first(self.selectors.modal_close)
        if button is None:
            button = await scope.first(self.selectors.modal_close)
        if button is None:
            console.print("[dim]  No close control found for checkout modal[/]")
            return
        await button.click(self.timeouts.click_ms)
        await self.document.pause(self.timeouts.settle_ms)

    async def _capture_new_window(self, document: NavigableDocument, label: str) -> NewWindow:
        try:
            await document.pause(self.timeouts.checkout_settle_ms)
            url = document.url
            if self.screenshot_dir and label:
                await document.screenshot(Path(self.screenshot_dir) / f"{label}-new-page.png")
        finally:
            await document.close()
        return NewWindow(url=url)
