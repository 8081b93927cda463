"""Base document capability the checkout verifier drives.

The verifier never talks to a browser directly. It talks to a
``NavigableDocument`` and to the ``Element`` and ``QueryScope`` handles the
document hands out. Any automation driver can sit behind these interfaces;
``adapters.playwright`` is the one shipped.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path


class DocumentError(Exception):
    """Base class for everything a document adapter may raise."""


class NotFoundError(DocumentError):
    """An expected element did not appear within its timeout."""


class InteractionError(DocumentError):
    """An element could not be clicked or selected."""


class NavigationError(DocumentError):
    """The document could not navigate to or fetch a URL."""


class QueryScope(ABC):
    """Something selectors can be resolved against: a page, a subtree, a frame."""

    poll_interval_s: float = 0.25

    @abstractmethod
    async def query(self, selector: str) -> list["Element"]:
        """
        Resolve a selector to the currently visible matches.

        Returns:
            Matches in document order; empty when nothing matches.
        """
        pass

    @abstractmethod
    async def wait_for(self, selector: str, timeout_ms: int) -> "Element":
        """
        Wait until the first match of a selector is visible.

        Raises:
            NotFoundError: nothing became visible within ``timeout_ms``.
        """
        pass

    async def first(self, selector: str) -> "Element | None":
        matches = await self.query(selector)
        return matches[0] if matches else None

    async def wait_for_any(self, selectors: list[str], timeout_ms: int) -> "Element":
        """Wait until any of several selectors has a visible match."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while True:
            for selector in selectors:
                if element := await self.first(selector):
                    return element
            if loop.time() >= deadline:
                raise NotFoundError(f"None of {selectors} appeared within {timeout_ms}ms")
            await asyncio.sleep(self.poll_interval_s)


class Element(QueryScope):
    """Handle to one element; also a scope for queries inside it."""

    @abstractmethod
    async def click(self, timeout_ms: int) -> None:
        """Raises InteractionError when the element cannot be activated."""
        pass

    @abstractmethod
    async def text(self) -> str:
        pass

    @abstractmethod
    async def attribute(self, name: str) -> str | None:
        pass

    @abstractmethod
    async def tag_name(self) -> str:
        """Lower-case tag name, e.g. ``"iframe"``."""
        pass

    @abstractmethod
    async def is_enabled(self) -> bool:
        pass

    @abstractmethod
    async def frame(self) -> QueryScope:
        """Scope over the document loaded inside an iframe element."""
        pass

    @abstractmethod
    async def screenshot(self, path: Path) -> None:
        """Best effort; never raises."""
        pass

    async def wait_until_enabled(self, timeout_ms: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while not await self.is_enabled():
            if loop.time() >= deadline:
                raise NotFoundError(f"Element still disabled after {timeout_ms}ms")
            await asyncio.sleep(self.poll_interval_s)


class NavigableDocument(QueryScope):
    """The live top-level document of one browsing context."""

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @abstractmethod
    async def goto(self, url: str, timeout_ms: int) -> int | None:
        """
        Navigate to a URL.

        Returns:
            HTTP status of the main response, or None when unknown.

        Raises:
            NavigationError: the navigation itself failed.
        """
        pass

    @abstractmethod
    async def reload(self, timeout_ms: int) -> None:
        pass

    @abstractmethod
    async def go_back(self, timeout_ms: int) -> None:
        pass

    @abstractmethod
    async def wait_for_new_document(self, timeout_ms: int) -> "NavigableDocument | None":
        """A newly opened browsing context, or None if none opened in time."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def body_text(self) -> str:
        pass

    @abstractmethod
    async def screenshot(self, path: Path, full_page: bool = False) -> None:
        """Best effort; never raises."""
        pass

    @abstractmethod
    async def pause(self, ms: int) -> None:
        """Give the page time to settle after an interaction."""
        pass

    @abstractmethod
    def console_errors(self) -> list[str]:
        """Console errors and uncaught page errors seen so far."""
        pass

    @abstractmethod
    async def links(self) -> list[str]:
        pass

    @abstractmethod
    async def head(self, url: str) -> int:
        """
        Issue a HEAD request from the document's context.

        Raises:
            NavigationError: no response at all.
        """
        pass
