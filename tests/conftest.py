"""Shared test fixtures for the replacement exchange core."""

import sys
from pathlib import Path

import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.common.models import LineItem, Product
from src.exchange.sqlite_store import SQLiteBackend


def make_product(pid: str, price: float, category: str = "pets", subtype: str = "standard", **kwargs) -> Product:
    return Product(id=pid, name=kwargs.pop("name", f"Product {pid}"), category=category,
                   subtype=subtype, price=price, **kwargs)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def product_factory():
    """Return the product factory (id, price, category, subtype)."""
    return make_product


@pytest.fixture
def sample_catalog() -> list[Product]:
    """Small two-category catalog in stable insertion order."""
    return [
        make_product("p1", 2.50, name="Katzenfutter Huhn"),
        make_product("p2", 2.50, name="Katzenfutter Rind"),
        make_product("p3", 4.00, name="Hundesnack"),
        make_product("p4", 50.00, subtype="display", name="Tiernahrung Display"),
        make_product("p5", 1.00, is_active=False, name="Katzenmilch"),
        make_product("f1", 0.99, category="food", name="Schokoriegel"),
        make_product("f2", 12.49, category="food", name="Kaffee"),
    ]


@pytest.fixture
def removed_cat_food(sample_catalog) -> LineItem:
    """Four units of p1 (EUR 10.00 removed value)."""
    return LineItem(product=sample_catalog[0], quantity=4)


@pytest.fixture
def sqlite_backend(tmp_path) -> SQLiteBackend:
    """Provide a SQLiteBackend on a temporary database file."""
    return SQLiteBackend(tmp_path / "test_exchange.db")
