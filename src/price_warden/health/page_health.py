"""Page-load health: console errors and outbound link status."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml
from rich.console import Console
from rich.markup import escape

from ..adapters.base import NavigableDocument, NavigationError
from ..config import Config

console = Console()

DEFAULT_IGNORED_PATTERNS = ["favicon", "analytics", "ads", "third-party"]
UNREACHABLE = 999


@dataclass
class LinkStatus:
    """One link and the status its HEAD request returned."""

    url: str
    status: int

    def __str__(self) -> str:
        suffix = " no errorcode, offline?" if self.status == UNREACHABLE else ""
        return f"{self.status} {self.url}{suffix}"


@dataclass
class PageHealth:
    """Result of one page-load health check."""

    url: str
    status: int | None
    console_errors: list[str] = field(default_factory=list)
    critical_errors: list[str] = field(default_factory=list)
    links: list[LinkStatus] = field(default_factory=list)
    broken: list[LinkStatus] = field(default_factory=list)
    known_issues_filtered: int = 0
    max_console_errors: int = 2

    @property
    def valid_links(self) -> int:
        return sum(1 for link in self.links if link.status == 200)

    @property
    def unreachable(self) -> list[LinkStatus]:
        return [link for link in self.links if link.status == UNREACHABLE]

    @property
    def passed(self) -> bool:
        return (
            self.status == 200
            and len(self.critical_errors) <= self.max_console_errors
            and not self.broken
        )


def load_ignored_patterns(path: Path | None) -> list[str]:
    """Default ignore list plus any patterns listed in a YAML file."""
    patterns = list(DEFAULT_IGNORED_PATTERNS)
    if path and path.exists():
        with open(path) as f:
            extra = yaml.safe_load(f)
        if isinstance(extra, list):
            patterns.extend(str(p) for p in extra)
    return patterns


def critical_errors(errors: list[str], patterns: list[str]) -> list[str]:
    """Drop console errors that match any ignored pattern (case-insensitive)."""
    lowered = [p.lower() for p in patterns]
    return [e for e in errors if not any(p in e.lower() for p in lowered)]


def load_known_issues(path: Path | None, url: str) -> list[re.Pattern]:
    """Known broken links for a page; ``*`` in an entry matches anything."""
    if not path or not path.exists():
        return []
    with open(path) as f:
        known = yaml.safe_load(f) or {}
    return [
        re.compile("^" + re.escape(str(entry)).replace(r"\*", ".*") + "$")
        for entry in known.get(url, [])
    ]


def _skipped(href: str, fragments: list[str]) -> bool:
    parsed = urlparse(href)
    if parsed.scheme in ("tel", "mailto", "javascript"):
        return True
    return bool(parsed.fragment) and f"#{parsed.fragment}" in fragments


async def check_page(document: NavigableDocument, url: str, config: Config) -> PageHealth:
    """Load a page, then check its console output and every link on it."""
    settings = config.page_health
    timeouts = config.timeouts

    status = await document.goto(url, timeouts.navigation_ms)
    if status is None:
        # networkidle timed out but the page itself answered
        status = 200
    health = PageHealth(url=url, status=status, max_console_errors=settings.max_console_errors)

    health.console_errors = document.console_errors()
    health.critical_errors = critical_errors(
        health.console_errors, load_ignored_patterns(settings.ignored_errors_file)
    )
    if health.critical_errors:
        console.print(f"[yellow]Critical errors found: {len(health.critical_errors)}[/]")

    hrefs = sorted(set(await document.links()))
    for href in hrefs:
        if _skipped(href, settings.skip_fragments):
            continue
        try:
            link = LinkStatus(href, await document.head(href))
        except NavigationError as e:
            console.print(f"[dim]{escape(str(e))}[/]")
            link = LinkStatus(href, UNREACHABLE)
        health.links.append(link)
        if settings.request_delay_ms:
            await document.pause(settings.request_delay_ms)

    not_found = [link for link in health.links if link.status == 404]
    known = load_known_issues(settings.known_issues_file, url)
    health.broken = [link for link in not_found if not any(k.match(str(link)) for k in known)]
    health.known_issues_filtered = len(not_found) - len(health.broken)
    return health
