"""Marketplace backend client layer."""

from .backend import MarketplaceBackend, OfferEndpointAction
from .errors import translate_http_error
from .http_client import HttpMarketplaceClient

__all__ = [
    "MarketplaceBackend",
    "OfferEndpointAction",
    "translate_http_error",
    "HttpMarketplaceClient",
]
