"""Playwright implementation of the document capability."""

import json
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import AsyncIterator

from playwright.async_api import (
    Error as PlaywrightError,
    FrameLocator,
    Locator,
    Page,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from rich.console import Console

from ..config import Config
from ..models import Target
from .base import (
    Element,
    InteractionError,
    NavigableDocument,
    NavigationError,
    NotFoundError,
    QueryScope,
)

console = Console()

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/117.0.0.0 Safari/537.36"
)


def _first_line(error: Exception) -> str:
    return str(error).splitlines()[0] if str(error) else type(error).__name__


@contextmanager
def _driver_errors(action: str):
    """Map Playwright failures onto the document error taxonomy."""
    try:
        yield
    except PlaywrightTimeoutError as e:
        raise NotFoundError(f"{action}: {_first_line(e)}") from e
    except PlaywrightError as e:
        raise InteractionError(f"{action}: {_first_line(e)}") from e


async def _visible(locator: Locator) -> list["PlaywrightElement"]:
    with _driver_errors("query"):
        items = await locator.filter(visible=True).all()
    return [PlaywrightElement(item) for item in items]


async def _wait_visible(locator: Locator, selector: str, timeout_ms: int) -> "PlaywrightElement":
    first = locator.filter(visible=True).first
    try:
        await first.wait_for(state="visible", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NotFoundError(f"Locator '{selector}' not visible after {timeout_ms}ms") from e
    except PlaywrightError as e:
        raise InteractionError(f"Locator '{selector}': {_first_line(e)}") from e
    return PlaywrightElement(first)


class PlaywrightFrame(QueryScope):
    """Query scope over the document inside a (possibly cross-origin) iframe."""

    def __init__(self, frame: FrameLocator):
        self._frame = frame

    async def query(self, selector: str) -> list[Element]:
        return await _visible(self._frame.locator(selector))

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        return await _wait_visible(self._frame.locator(selector), selector, timeout_ms)


class PlaywrightElement(Element):
    """An element located in the page; queries resolve inside its subtree."""

    def __init__(self, locator: Locator):
        self._locator = locator

    async def query(self, selector: str) -> list[Element]:
        return await _visible(self._locator.locator(selector))

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        return await _wait_visible(self._locator.locator(selector), selector, timeout_ms)

    async def click(self, timeout_ms: int) -> None:
        try:
            await self._locator.click(timeout=timeout_ms)
        except PlaywrightError as e:
            raise InteractionError(_first_line(e)) from e

    async def text(self) -> str:
        with _driver_errors("text"):
            return (await self._locator.text_content()) or ""

    async def attribute(self, name: str) -> str | None:
        with _driver_errors(f"attribute {name}"):
            return await self._locator.get_attribute(name)

    async def tag_name(self) -> str:
        with _driver_errors("tag name"):
            return (await self._locator.evaluate("el => el.tagName")).lower()

    async def is_enabled(self) -> bool:
        with _driver_errors("enabled state"):
            return await self._locator.is_enabled()

    async def frame(self) -> QueryScope:
        return PlaywrightFrame(self._locator.content_frame)

    async def screenshot(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await self._locator.screenshot(path=str(path))
        except PlaywrightError as e:
            console.print(f"[dim]  Screenshot {path.name} skipped: {_first_line(e)}[/]")


class PlaywrightDocument(NavigableDocument):
    """A Playwright page seen as a navigable document."""

    def __init__(self, page: Page, wait_until: str = "networkidle"):
        self.page = page
        self.wait_until = wait_until
        self._console_errors: list[str] = []

        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)

    def _on_console(self, message) -> None:
        if message.type == "error":
            self._console_errors.append(message.text)

    def _on_page_error(self, error) -> None:
        self._console_errors.append(str(error))

    @property
    def url(self) -> str:
        return self.page.url

    async def query(self, selector: str) -> list[Element]:
        return await _visible(self.page.locator(selector))

    async def wait_for(self, selector: str, timeout_ms: int) -> Element:
        return await _wait_visible(self.page.locator(selector), selector, timeout_ms)

    async def goto(self, url: str, timeout_ms: int) -> int | None:
        try:
            response = await self.page.goto(url, wait_until=self.wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            # The page is usable long before the network goes quiet
            console.print("[yellow]⚠️  Timeout while waiting for network idle[/]")
            return None
        except PlaywrightError as e:
            raise NavigationError(_first_line(e)) from e
        return response.status if response else None

    async def reload(self, timeout_ms: int) -> None:
        try:
            await self.page.reload(wait_until=self.wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            console.print("[yellow]⚠️  Timeout while waiting for network idle[/]")
        except PlaywrightError as e:
            raise NavigationError(_first_line(e)) from e

    async def go_back(self, timeout_ms: int) -> None:
        try:
            await self.page.go_back(wait_until=self.wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            console.print("[yellow]⚠️  Timeout while waiting for network idle[/]")
        except PlaywrightError as e:
            raise NavigationError(_first_line(e)) from e

    async def wait_for_new_document(self, timeout_ms: int) -> NavigableDocument | None:
        try:
            page = await self.page.context.wait_for_event("page", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return None
        return PlaywrightDocument(page, self.wait_until)

    async def close(self) -> None:
        await self.page.close()

    async def body_text(self) -> str:
        with _driver_errors("page text"):
            return (await self.page.text_content("body")) or ""

    async def screenshot(self, path: Path, full_page: bool = False) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(path), full_page=full_page)
        except PlaywrightError as e:
            console.print(f"[dim]  Screenshot {path.name} skipped: {_first_line(e)}[/]")

    async def pause(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    def console_errors(self) -> list[str]:
        return list(self._console_errors)

    async def links(self) -> list[str]:
        with _driver_errors("links"):
            return await self.page.evaluate("() => Array.from(document.links).map(a => a.href)")

    async def head(self, url: str) -> int:
        try:
            response = await self.page.request.head(url)
        except PlaywrightError as e:
            raise NavigationError(_first_line(e)) from e
        return response.status


@asynccontextmanager
async def open_document(config: Config, target: Target) -> AsyncIterator[PlaywrightDocument]:
    """Launch Chromium with the target's geo mocked and noisy endpoints blocked."""
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=config.headless)
        context = await browser.new_context(
            user_agent=f"{USER_AGENT} {config.user_agent_suffix}".strip(),
        )

        async def abort(route: Route) -> None:
            await route.abort()

        async def fulfil_geo(route: Route) -> None:
            await route.fulfill(
                status=200,
                content_type="application/json",
                body=json.dumps({"country": target.country}),
            )

        for pattern in config.blocked_urls:
            await context.route(pattern, abort)
        if config.geo_url:
            console.print(f"[dim]Mocking geo location with country: {target.country}[/]")
            await context.route(config.geo_url, fulfil_geo)

        page = await context.new_page()
        try:
            yield PlaywrightDocument(page)
        finally:
            await context.close()
            await browser.close()
