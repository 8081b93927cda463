"""Document adapters the checkout verifier runs against."""

from .base import (
    DocumentError,
    Element,
    InteractionError,
    NavigableDocument,
    NavigationError,
    NotFoundError,
    QueryScope,
)

__all__ = [
    "DocumentError",
    "Element",
    "InteractionError",
    "NavigableDocument",
    "NavigationError",
    "NotFoundError",
    "QueryScope",
]
