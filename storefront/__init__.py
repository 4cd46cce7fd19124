"""Storefront identity, session and guest reconciliation service."""

__version__ = "0.1.0"
