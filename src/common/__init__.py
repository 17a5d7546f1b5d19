"""Catalog, location and exchange record models plus the plumbing both
the bundle engine and the exchange workflow run on."""

from .config import Settings, settings
from .http_client import HTTPClient
from .models import (
    ExchangeReason,
    ExchangeRecord,
    ExchangeStatus,
    LineItem,
    Location,
    Product,
    line_items_value,
)

__all__ = [
    "Settings",
    "settings",
    "HTTPClient",
    "ExchangeReason",
    "ExchangeRecord",
    "ExchangeStatus",
    "LineItem",
    "Location",
    "Product",
    "line_items_value",
]
