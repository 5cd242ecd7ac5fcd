"""Marketplace conversation core: reconciliation, offer negotiation and retries."""

__version__ = "0.1.0"
