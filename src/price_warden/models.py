"""Core data models for Price Warden."""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from .pricing import prices_match

if TYPE_CHECKING:
    from .adapters.base import Element, QueryScope


class Stage(Enum):
    """Where in the checkout flow a finding was recorded."""

    PAGE = "page"
    CARD = "card"
    OPTION = "option"


class UnitOutcome(Enum):
    """Result of visiting one checkout unit."""

    PASSED = "passed"
    NO_CHECKOUT_LINK = "no_checkout_link"
    SKIPPED = "skipped"
    FILTERED = "filtered"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class Target:
    """The page under test."""

    base_url: str
    country: str = "us"

    @property
    def identity(self) -> str:
        return self.base_url

    def owns(self, url: str) -> bool:
        """True while ``url`` stays on the target's origin and path prefix."""
        return url.startswith(self.base_url)

    @classmethod
    def from_url(cls, url: str, country: str | None = None) -> "Target":
        if not country:
            segments = [s for s in urlparse(url).path.split("/") if s]
            country = segments[0] if segments and re.fullmatch(r"[a-z]{2}", segments[0]) else "us"
        return cls(base_url=url, country=country.lower())


@dataclass(frozen=True)
class CheckoutUnit:
    """A (tab, card) position; the granularity of progress and retry."""

    tab: int
    card: int

    @property
    def key(self) -> str:
        return f"tab{self.tab}-card{self.card}"

    @classmethod
    def parse(cls, key: str) -> "CheckoutUnit":
        match = re.fullmatch(r"tab(\d+)-card(\d+)", key)
        if not match:
            raise ValueError(f"Not a checkout unit key: {key!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return self.key


@dataclass
class Tab:
    """One pricing segment selector."""

    index: int
    title: str
    element: "Element"


@dataclass
class Card:
    """One merchandising card inside the active tab panel."""

    index: int
    product_name: str
    price: str | None
    checkout: "Element | None"
    element: "Element"

    @property
    def has_checkout(self) -> bool:
        return self.checkout is not None


@dataclass
class PriceOption:
    """A selectable billing term inside the checkout modal."""

    index: int
    price: str
    selected: bool = False


@dataclass
class NewWindow:
    """Checkout opened a separate browsing context."""

    url: str


@dataclass
class Redirect:
    """Checkout navigated the current document away from the target."""

    url: str
    page_text: str


@dataclass
class InPageModal:
    """Checkout opened a panel on the target page itself."""

    scope: "QueryScope"
    options: list[PriceOption]
    selected: list[str]
    continue_action: Callable[[], Awaitable[None]]
    close_action: Callable[[], Awaitable[None]]
    source: str | None = None

    @property
    def is_iframe(self) -> bool:
        return self.source is not None


CheckoutSurface = NewWindow | InPageModal | Redirect


@dataclass
class ClickFailed:
    """The checkout affordance could not be activated."""

    reason: str


@dataclass
class CartTotal:
    """Price fields read from the cart page."""

    subtotal: str | None = None
    total: str | None = None
    next_total: str | None = None

    def values(self) -> list[str]:
        return [v for v in (self.subtotal, self.total, self.next_total) if v]

    @property
    def primary(self) -> str | None:
        values = self.values()
        return values[0] if values else None

    def matches(self, price: str | None) -> bool:
        """Any one of subtotal, total or next-period total is enough."""
        return any(prices_match(price, value) for value in self.values())

    def describe(self) -> str:
        return " | ".join(
            f"{name}={value or 'N/A'}"
            for name, value in (
                ("subtotal", self.subtotal),
                ("total", self.total),
                ("next", self.next_total),
            )
        )


@dataclass(frozen=True)
class Finding:
    """A recorded mismatch or failure."""

    unit: CheckoutUnit | None
    stage: Stage
    message: str
    retry: bool = False

    def __str__(self) -> str:
        where = self.unit.key if self.unit else "page"
        return f"[{where}] {self.message}"


@dataclass
class OptionResult:
    """Outcome of checking one price option against the cart."""

    index: int
    price: str
    cart: CartTotal | None = None
    finding: Finding | None = None


@dataclass
class UnitResult:
    """Outcome of visiting one checkout unit."""

    unit: CheckoutUnit
    tab_title: str = ""
    product_name: str = ""
    card_price: str | None = None
    outcome: UnitOutcome = UnitOutcome.PASSED
    surface: str | None = None
    findings: list[Finding] = field(default_factory=list)
    options: list[OptionResult] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.findings and not any(o.finding for o in self.options)

    @property
    def option_findings(self) -> list[Finding]:
        return [o.finding for o in self.options if o.finding]


@dataclass
class TabResult:
    """Summary of one tab."""

    index: int
    title: str
    card_count: int = 0


@dataclass
class RunReport:
    """Everything one verifier run observed."""

    target: Target
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    page_findings: list[Finding] = field(default_factory=list)
    tabs: list[TabResult] = field(default_factory=list)
    units: list[UnitResult] = field(default_factory=list)

    @property
    def card_findings(self) -> list[Finding]:
        return [f for u in self.units for f in u.findings]

    @property
    def option_findings(self) -> list[Finding]:
        return [f for u in self.units for f in u.option_findings]

    @property
    def findings(self) -> list[Finding]:
        return self.page_findings + self.card_findings + self.option_findings

    @property
    def passed(self) -> bool:
        return not self.findings

    def count(self, outcome: UnitOutcome) -> int:
        return sum(1 for u in self.units if u.outcome is outcome)
