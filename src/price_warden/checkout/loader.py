"""Load the target page; the only failure that aborts a whole run."""

from rich.console import Console
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..adapters.base import DocumentError, NavigableDocument, NavigationError
from ..config import Config
from ..models import Target

console = Console()


class TargetLoadError(Exception):
    """The target could not be loaded; nothing downstream can be verified."""


class TargetLoader:
    """Navigate to the target and wait until it is ready, with bounded retries."""

    def __init__(self, document: NavigableDocument, target: Target, config: Config):
        self.document = document
        self.target = target
        self.selectors = config.selectors
        self.timeouts = config.timeouts

    async def load(self) -> None:
        backoff = self.timeouts.load_backoff_s
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, self.timeouts.load_attempts)),
                wait=wait_exponential(multiplier=backoff, min=backoff, max=10 * backoff),
                retry=retry_if_exception_type(DocumentError),
                reraise=True,
            ):
                with attempt:
                    await self._load_once()
        except DocumentError as e:
            raise TargetLoadError(f"Could not load {self.target.base_url}: {e}") from e

    async def _load_once(self) -> None:
        status = await self.document.goto(self.target.base_url, self.timeouts.navigation_ms)
        if status is not None and status >= 400:
            raise NavigationError(f"HTTP {status}")
        if self.selectors.ready:
            await self.document.wait_for(self.selectors.ready, self.timeouts.navigation_ms)
