"""Price normalization for comparing displayed prices across formats and currencies.

Prices show up as ``"$52.99/mo"``, ``"US$1,234.50"``, ``"1.234,50 €"`` or
``"1 234,50 zł/an"``. Two prices are considered equal when they denote the
same amount of major and minor units, whatever the currency symbol or
separator convention. Only the part before the first ``/`` is ever read, so a
recurring suffix never leaks into the amount.
"""

import re
from decimal import Decimal, InvalidOperation

# Indian lakh grouping ("1,23,456"), grouped thousands ("1,234", "1.234.567",
# "1 234") or a plain run of digits, each with an optional decimal part. A
# line break never groups digits.
_LAKH = r"\d{1,2}(?:,\d{2})+,\d{3}(?:[.,]\d{1,2})?(?!\d)"
_GROUPED = r"\d{1,3}(?:(?:[.,']|[^\S\r\n])\d{3})+(?:[.,]\d{1,2})?(?!\d)"
_PLAIN = r"\d+(?:[.,]\d{1,2})?(?!\d)"
_AMOUNT = re.compile(f"{_LAKH}|{_GROUPED}|{_PLAIN}")
_CANDIDATES = [re.compile(pattern) for pattern in (_LAKH, _GROUPED, _PLAIN)]
# A digit that does not continue a number already under way
_NUMBER_START = re.compile(r"(?<![\d.,'])\d")
_SEPARATORS = ".,"
_CENTS = Decimal("0.01")

CARD_LOWER = "[CARD_LOWER]"
CARD_HIGHER = "[CARD_HIGHER]"
PRICE_MISSING = "[PRICE_MISSING]"


def _parse(number: str) -> Decimal | None:
    """Turn one matched amount into a Decimal."""
    last = max(number.rfind(sep) for sep in _SEPARATORS)
    minor = ""
    major = number
    if last != -1:
        tail = number[last + 1:]
        if tail.isdigit() and len(tail) <= 2:
            major, minor = number[:last], tail
    major = re.sub(r"\D", "", major)
    try:
        return Decimal(f"{major or '0'}.{minor or '0'}").quantize(_CENTS)
    except InvalidOperation:
        return None


def _amounts_in(text: str):
    """Yield every reading of every number in free text.

    Each number start is tried against every pattern, so a quantity on one
    line and a price on the next are read apart, not as one amount.
    """
    for start in _NUMBER_START.finditer(text):
        for candidate in _CANDIDATES:
            match = candidate.match(text, start.start())
            if match:
                value = _parse(match.group())
                if value is not None:
                    yield value


def amount(raw: str | None) -> Decimal | None:
    """Return the amount a displayed price denotes, or None if there is none."""
    if not raw:
        return None
    head = raw.split("/", 1)[0]
    match = _AMOUNT.search(head)
    if not match:
        return None
    return _parse(match.group())


def normalize(raw: str | None) -> str:
    """Canonical token for a displayed price; empty when no price is present."""
    value = amount(raw)
    return "" if value is None else format(value, "f")


def prices_match(a: str | None, b: str | None) -> bool:
    """A missing price never matches anything, not even another missing price."""
    token = normalize(a)
    return bool(token) and token == normalize(b)


def price_in_text(raw: str | None, text: str) -> bool:
    """Loose check used for pages outside our control (redirect targets)."""
    token = normalize(raw)
    if not token:
        return False
    head = raw.split("/", 1)[0].strip()
    if head and head in text:
        return True
    return any(format(value, "f") == token for value in _amounts_in(text))


def direction_tag(card_price: str | None, other_price: str | None) -> str:
    """Tag a mismatch as an undercharge or overcharge relative to the card."""
    card, other = amount(card_price), amount(other_price)
    if card is None or other is None:
        return PRICE_MISSING
    if card < other:
        return CARD_LOWER
    if card > other:
        return CARD_HIGHER
    return ""
