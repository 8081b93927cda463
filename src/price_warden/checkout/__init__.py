"""Checkout-flow traversal and price-consistency verification."""

from .loader import TargetLoader, TargetLoadError
from .navigator import CheckoutNavigator
from .traversal import TargetTraversal
from .verifier import ConsistencyVerifier

__all__ = [
    "CheckoutNavigator",
    "ConsistencyVerifier",
    "TargetLoadError",
    "TargetLoader",
    "TargetTraversal",
]
