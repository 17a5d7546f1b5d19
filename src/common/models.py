"""Shared Pydantic data models for the field-sales exchange core.

These models define the data contracts between the bundle engine and the
exchange stores (SQLite, Supabase, REST API). All modules import from here.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# === Enums ===

class ProductSubtype(str, Enum):
    """Packaging subtype of a catalog product."""
    STANDARD = "standard"
    DISPLAY = "display"
    PALETTE = "palette"
    SCHUETTE = "schuette"


class ExchangeStatus(str, Enum):
    """Persistence state of a confirmed exchange."""
    PENDING = "pending"
    FULFILLED = "fulfilled"


class ExchangeReason(str, Enum):
    """Why products were exchanged at a location."""
    PRODUCT_EXCHANGE = "Produkttausch"


# === Catalog ===

class Product(BaseModel):
    """Catalog product. Immutable reference data owned by the catalog."""
    id: str
    name: str
    category: str = Field(description="Department, e.g. 'pets' or 'food'")
    subtype: str = ProductSubtype.STANDARD.value
    price: float = Field(ge=0, description="Unit price in EUR")
    weight: str = ""
    content: Optional[str] = None
    pallet_size: Optional[int] = Field(default=None, ge=0)
    sku: Optional[str] = None
    article_number: Optional[str] = None
    is_active: bool = True

    model_config = {"frozen": True}


class LineItem(BaseModel):
    """A product reference with a quantity."""
    product: Product
    quantity: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @property
    def value(self) -> float:
        return self.product.price * self.quantity


def line_items_value(items: list[LineItem] | tuple[LineItem, ...]) -> float:
    """Sum of price x quantity over line items."""
    return sum(item.value for item in items)


# === Locations ===

class Location(BaseModel):
    """A retail location (market) the operator visits."""
    id: str
    name: str
    chain: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    current_visits: int = Field(default=0, ge=0)
    last_visit_date: Optional[date] = None


# === Exchange records ===

class ExchangeRecord(BaseModel):
    """A confirmed exchange as persisted by an ExchangeRecordStore.

    ``id`` is assigned by the store on create; records built by the
    workflow carry an empty id until then.
    """
    id: str = ""
    location_id: str
    operator_id: str
    removed: list[LineItem]
    replacement: list[LineItem]
    total_value: float = Field(ge=0)
    status: ExchangeStatus
    reason: ExchangeReason = ExchangeReason.PRODUCT_EXCHANGE
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    fulfilled_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ExchangeStatus.PENDING
