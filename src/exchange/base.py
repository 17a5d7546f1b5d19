"""Collaborator contracts consumed by the exchange core.

Backends (SQLite, Supabase, REST API) implement all three. Transport or
store errors surface as PersistenceFailure; status transitions of
exchange records are owned by the store, not by in-memory workflow state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.common.models import ExchangeRecord, Location, Product


class CatalogAccessor(ABC):
    """Read-only product catalog."""

    @abstractmethod
    def list_products(self) -> list[Product]:
        """Return all products in stable catalog order."""
        ...


class LocationDirectory(ABC):
    """Locations the operator can visit."""

    @abstractmethod
    def list(self) -> list[Location]:
        ...

    @abstractmethod
    def record_visit(self, location_id: str, operator_id: str) -> None:
        """Register a visit for frequency tracking."""
        ...


class ExchangeRecordStore(ABC):
    """Persistence boundary for confirmed exchanges."""

    @abstractmethod
    def create(self, record: ExchangeRecord) -> str:
        """Persist a new record and return its id."""
        ...

    @abstractmethod
    def get(self, record_id: str) -> ExchangeRecord:
        """Load a record.

        Raises:
            RecordNotFound: If no record has this id.
        """
        ...

    @abstractmethod
    def fulfill(self, record_id: str) -> bool:
        """Flip a Pending record to Fulfilled.

        Idempotent: returns True if the record transitioned, False if it
        was already Fulfilled.

        Raises:
            RecordNotFound: If no record has this id.
        """
        ...

    @abstractmethod
    def list_pending(self, operator_id: str) -> list[ExchangeRecord]:
        """Pending records created by an operator, newest first."""
        ...
