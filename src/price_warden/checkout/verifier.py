"""Walk every tab and card of the target and check prices stay consistent.

Three checkpoints are compared for each card that opens an in-page checkout:
the card price against the modal's pre-selected option, then every option
against the cart it leads to. Redirected checkouts are checked loosely
against the destination page text; new windows are out of scope.

A unit that crashes is recorded and the target reloaded; one broken card
never stops the run. Units that come through clean are written to the
progress store straight away, so a re-run picks up where this one failed.
"""

from contextlib import nullcontext
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from ..adapters.base import Element, InteractionError, NavigableDocument
from ..config import Config
from ..models import (
    Card,
    CheckoutUnit,
    ClickFailed,
    Finding,
    InPageModal,
    NewWindow,
    OptionResult,
    Redirect,
    RunReport,
    Stage,
    TabResult,
    Target,
    UnitOutcome,
    UnitResult,
)
from ..pricing import PRICE_MISSING, direction_tag, price_in_text, prices_match
from ..progress import ProgressStore
from ..tracing import TracingClient, get_tracing
from .loader import TargetLoader, TargetLoadError
from .navigator import CheckoutNavigator
from .traversal import TargetTraversal

console = Console()


class ConsistencyVerifier:
    """Orchestrates one full traversal of a target."""

    def __init__(
        self,
        document: NavigableDocument,
        target: Target,
        store: ProgressStore,
        config: Config,
        tracing: TracingClient | None = None,
    ):
        self.document = document
        self.target = target
        self.store = store
        self.config = config
        self.screenshot_dir = config.screenshot_dir
        self.loader = TargetLoader(document, target, config)
        self.traversal = TargetTraversal(document, config)
        self.navigator = CheckoutNavigator(document, target, config)
        self._tracing = tracing or get_tracing()

    async def run(self) -> RunReport:
        """
        Verify every unit not already passed.

        Raises:
            TargetLoadError: the target could not be loaded at all.
        """
        report = RunReport(target=self.target)
        self.store.load(self.target.identity)
        if skipped := len(self.store.record.passed_units):
            console.print(f"[dim]Resuming: {skipped} units already passed[/]")

        with self._trace() as trace:
            await self.loader.load()
            tabs = await self.traversal.list_tabs()
            console.print(f"\n[bold]📑 TABS DISCOVERY:[/] Found {len(tabs)} tabs to test")
            self._check_tab_count(report, len(tabs))

            for tab in tabs:
                tab_result = TabResult(index=tab.index, title=tab.title)
                report.tabs.append(tab_result)
                if not self.traversal.wants_tab(tab):
                    console.print(f"[dim]  Skipping tab \"{escape(tab.title)}\" (not selected)[/]")
                    continue
                await self._verify_tab(report, tab_result, trace)

            report.finished_at = datetime.now(timezone.utc)
            if self._tracing:
                self._tracing.finish(trace, report)
        return report

    def _check_tab_count(self, report: RunReport, count: int) -> None:
        expected = self.config.expected_tabs
        if count == 0:
            report.page_findings.append(
                Finding(None, Stage.PAGE, f"No tabs found on {self.target.base_url}")
            )
        elif expected is not None and count != expected:
            report.page_findings.append(
                Finding(None, Stage.PAGE, f"Expected {expected} tabs but found {count}")
            )

    async def _verify_tab(self, report: RunReport, tab_result: TabResult, trace) -> None:
        console.print(f"\n  ┌─ Tab {tab_result.index + 1}: \"{escape(tab_result.title)}\"")
        try:
            tab = await self.traversal.tab_at(tab_result.index)
            panel = await self.traversal.activate(tab)
            cards = await self.traversal.list_cards(panel)
        except TargetLoadError:
            raise
        except Exception as e:
            report.page_findings.append(Finding(
                None,
                Stage.PAGE,
                f"[RETRY] Could not open tab \"{tab_result.title}\": {e}",
                retry=True,
            ))
            console.print(f"[red]  │  ✗ ERROR: could not open tab: {escape(str(e))}[/]")
            await self._recover()
            return

        tab_result.card_count = len(cards)
        console.print(f"  │  Found {len(cards)} merch card{'s' if len(cards) != 1 else ''} to test")
        await self._snap_page(f"plans-tab-{tab_result.index + 1}")

        for card in cards:
            unit = CheckoutUnit(tab_result.index, card.index)
            if not self.traversal.wants_card(card):
                report.units.append(self._bare_result(unit, tab_result.title, card, UnitOutcome.FILTERED))
                continue
            if self.store.has_passed(unit):
                console.print(f"[dim]  │  ├─ {unit.key} \"{escape(card.product_name)}\" already passed, skipping[/]")
                report.units.append(self._bare_result(unit, tab_result.title, card, UnitOutcome.SKIPPED))
                continue

            result = await self._verify_unit(unit, tab_result.title)
            report.units.append(result)
            if self._tracing:
                self._tracing.unit(trace, result)

    async def _verify_unit(self, unit: CheckoutUnit, tab_title: str) -> UnitResult:
        result = UnitResult(unit=unit, tab_title=tab_title)
        label = f"plans-tab-{unit.tab + 1}-card-{unit.card + 1}"

        try:
            card = await self.traversal.card_at(unit)
            result.product_name = card.product_name
            result.card_price = card.price
            console.print("  │")
            console.print(f"  │  ├─ Card {unit.card + 1}: \"{escape(card.product_name)}\"")
            console.print(f"  │  │  Price: {escape(card.price or 'N/A')}")
            await self._snap_element(card.element, label)

            if card.has_checkout:
                await self._verify_checkout(card, result, label)
            else:
                result.outcome = UnitOutcome.NO_CHECKOUT_LINK
                console.print("  │  │  ⚠️  No checkout link found")
        except TargetLoadError:
            raise
        except Exception as e:
            result.outcome = UnitOutcome.ERROR
            result.findings.append(Finding(
                unit,
                Stage.CARD,
                f"[RETRY] Error testing tab \"{tab_title}\" card \"{result.product_name}\": {e}",
                retry=True,
            ))
            console.print(f"[red]  │  │  ✗ ERROR: {escape(str(e))}[/]")
            await self._recover()

        if result.clean and result.outcome in (UnitOutcome.PASSED, UnitOutcome.NO_CHECKOUT_LINK):
            self.store.mark_passed(unit)
        elif result.outcome is UnitOutcome.PASSED:
            result.outcome = UnitOutcome.FAILED
        return result

    async def _verify_checkout(self, card: Card, result: UnitResult, label: str) -> None:
        surface = await self.navigator.invoke_checkout(card, label)

        if isinstance(surface, ClickFailed):
            result.surface = "click_failed"
            result.outcome = UnitOutcome.FAILED
            result.findings.append(Finding(
                result.unit,
                Stage.CARD,
                f"[RETRY] Could not click checkout link for tab \"{result.tab_title}\" "
                f"card \"{card.product_name}\": {surface.reason}",
                retry=True,
            ))
            console.print(f"[red]  │  │  ✗ Click failed: {escape(surface.reason)}[/]")
            await self._recover()
        elif isinstance(surface, NewWindow):
            result.surface = "new_window"
            console.print("  │  │  🔗 New page opened")
            console.print(f"  │  │     URL: {escape(surface.url)}")
        elif isinstance(surface, Redirect):
            result.surface = "redirect"
            await self._verify_redirect(card, surface, result, label)
        else:
            result.surface = "iframe_modal" if surface.is_iframe else "inline_modal"
            await self._verify_modal(card, surface, result, label)

    async def _verify_redirect(self, card: Card, surface: Redirect, result: UnitResult, label: str) -> None:
        console.print(f"  │  │  🔀 Redirected to: {escape(surface.url)}")
        await self._snap_page(f"{label}-redirected")

        if card.price is not None and price_in_text(card.price, surface.page_text):
            console.print("[green]  │  │     ✓ Card price found in redirected page[/]")
        else:
            tag = f"{PRICE_MISSING} " if card.price is None else ""
            message = (
                f"{tag}Card price {card.price or 'N/A'} not found in redirected page content "
                f"for tab \"{result.tab_title}\" card \"{card.product_name}\""
            )
            result.findings.append(Finding(result.unit, Stage.CARD, message))
            console.print(f"[red]  │  │     ✗ ERROR: {escape(message)}[/]")

        if not await self.navigator.leave_redirect():
            await self._recover()

    async def _verify_modal(self, card: Card, modal: InPageModal, result: UnitResult, label: str) -> None:
        unit = result.unit
        where = f"for tab \"{result.tab_title}\" card \"{card.product_name}\""
        console.print("  │  │  🎭 Modal opened")
        await self._snap_page(f"{label}-modal")

        prefix = self.config.modal_source_prefix
        if modal.is_iframe:
            console.print(f"  │  │     Iframe: {escape(modal.source)}")
            if prefix and not modal.source.startswith(prefix):
                self._card_finding(result, f"Iframe src {modal.source} is not valid {where}")

        if len(modal.selected) > 1:
            self._card_finding(
                result,
                f"Two or more prices {', '.join(modal.selected)} in an option found {where}",
            )
        if not modal.selected:
            self._card_finding(result, f"No pre-selected price option in checkout modal {where}")
        else:
            selected = modal.selected[0]
            console.print(f"  │  │     Selected: {escape(selected)}")
            if prices_match(card.price, selected):
                console.print("[green]  │  │     ✓ Price matches card price[/]")
            else:
                tag = direction_tag(card.price, selected)
                self._card_finding(
                    result,
                    f"{tag} Selected price option {selected} does not match "
                    f"card price {card.price or 'N/A'} {where}",
                )

        options = list(modal.options)
        console.print(
            f"  │  │     Testing {len(options)} price option{'s' if len(options) != 1 else ''}: "
            + escape(f"[{', '.join(o.price for o in options)}]")
        )
        for option in options:
            option_result = OptionResult(index=option.index, price=option.price)
            result.options.append(option_result)

            await self.navigator.choose_option(modal, option.index)
            await self.navigator.continue_to_cart(modal)
            await self._snap_page(f"{label}-option-{option.index + 1}")

            cart = await self.navigator.read_cart()
            option_result.cart = cart
            console.print(f"  │  │       → Option {option.index + 1}/{len(options)}: {escape(option.price)}")
            console.print(f"  │  │          Cart: {escape(cart.describe())}")

            if cart.matches(option.price):
                console.print("[green]  │  │          ✓ Price matches[/]")
            else:
                tag = direction_tag(option.price, cart.primary)
                message = (
                    f"{tag} Cart subtotal/total ({cart.describe()}) does not match "
                    f"option price {option.price} {where}"
                )
                option_result.finding = Finding(unit, Stage.OPTION, message)
                console.print(f"[red]  │  │          ✗ ERROR: {escape(message)}[/]")

            await self.navigator.go_back()
            if option.index < len(options) - 1:
                modal = await self._reopen_modal(unit)

        await self.navigator.close_modal(modal)

    async def _reopen_modal(self, unit: CheckoutUnit) -> InPageModal:
        """Get back to a fresh checkout modal for the next option."""
        if await self.navigator.modal_visible():
            return await self.navigator.open_modal()

        card = await self.traversal.card_at(unit)
        surface = await self.navigator.invoke_checkout(card)
        if not isinstance(surface, InPageModal):
            raise InteractionError(
                f"Checkout did not reopen as a modal ({type(surface).__name__})"
            )
        return surface

    async def _recover(self) -> None:
        """Reload the target so the next unit starts from a known state."""
        console.print("[yellow]  │  ↻ Reloading target[/]")
        await self.loader.load()

    def _card_finding(self, result: UnitResult, message: str) -> None:
        result.findings.append(Finding(result.unit, Stage.CARD, message))
        console.print(f"[red]  │  │     ✗ ERROR: {escape(message)}[/]")

    def _bare_result(self, unit: CheckoutUnit, tab_title: str, card: Card, outcome: UnitOutcome) -> UnitResult:
        return UnitResult(
            unit=unit,
            tab_title=tab_title,
            product_name=card.product_name,
            card_price=card.price,
            outcome=outcome,
        )

    def _trace(self):
        if not self._tracing:
            return nullcontext()
        return self._tracing.run(self.target)

    async def _snap_page(self, name: str) -> None:
        if self.screenshot_dir:
            await self.document.screenshot(Path(self.screenshot_dir) / f"{name}.png")

    async def _snap_element(self, element: Element, name: str) -> None:
        if self.screenshot_dir:
            await element.screenshot(Path(self.screenshot_dir) / f"{name}.png")
