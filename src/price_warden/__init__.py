"""Price Warden - price consistency monitoring for commerce plans pages."""

__version__ = "0.1.0"
