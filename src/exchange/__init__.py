"""Exchange workflow and its persistence backends.

Backends implement CatalogAccessor, LocationDirectory and
ExchangeRecordStore:
- sqlite:   local file (offline use, tests)
- supabase: field-sales tables via supabase-py
- api:      REST backend via HTTPClient
"""

from __future__ import annotations

from src.common.config import Settings, settings as default_settings

from .api_client import ApiBackend
from .base import CatalogAccessor, ExchangeRecordStore, LocationDirectory
from .errors import InvalidTransition, PersistenceFailure, RecordNotFound
from .sqlite_store import SQLiteBackend
from .supabase_store import SupabaseBackend
from .workflow import ExchangeWorkflow, transition

BACKENDS = ("sqlite", "supabase", "api")


def get_backend(settings: Settings | None = None):
    """Build the backend named by settings.backend.

    Raises:
        ValueError: Unknown backend name, or missing Supabase credentials.
    """
    settings = settings or default_settings
    name = settings.backend.lower()
    if name == "sqlite":
        return SQLiteBackend(settings.database.db_abs_path)
    if name == "supabase":
        return SupabaseBackend()
    if name == "api":
        return ApiBackend(settings.api)
    raise ValueError(f"Unknown backend '{settings.backend}'. Choose from: {', '.join(BACKENDS)}")


__all__ = [
    "ApiBackend",
    "BACKENDS",
    "CatalogAccessor",
    "ExchangeRecordStore",
    "ExchangeWorkflow",
    "InvalidTransition",
    "LocationDirectory",
    "PersistenceFailure",
    "RecordNotFound",
    "SQLiteBackend",
    "SupabaseBackend",
    "get_backend",
    "transition",
]
