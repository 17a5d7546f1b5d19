"""Tests for the Supabase backend (client mocked)."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from src.common.models import ExchangeRecord, ExchangeStatus, LineItem
from src.exchange.errors import PersistenceFailure, RecordNotFound
from src.exchange.supabase_store import SupabaseBackend, location_from_row, product_from_row


PRODUCT_ROW = {
    "id": "p1",
    "name": "Katzenfutter Huhn",
    "department": "pets",
    "product_type": "standard",
    "weight": "400g",
    "content": None,
    "pallet_size": None,
    "price": "2.50",
    "sku": "PET-1",
}


def _table(*results):
    """A chainable table mock whose execute() yields the given data lists in turn."""
    table = MagicMock()
    for method in ("select", "eq", "order", "in_", "insert", "update", "delete"):
        getattr(table, method).return_value = table
    table.execute.side_effect = [
        r if isinstance(r, Exception) else MagicMock(data=r) for r in results
    ]
    return table


def _make_backend(**tables) -> SupabaseBackend:
    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    return SupabaseBackend(client=client)


def _make_record(product_factory, status=ExchangeStatus.PENDING) -> ExchangeRecord:
    return ExchangeRecord(
        location_id="m1",
        operator_id="gl-1",
        removed=[LineItem(product=product_factory("p1", 2.5), quantity=4)],
        replacement=[LineItem(product=product_factory("p2", 5.0), quantity=2)],
        total_value=10.0,
        status=status,
    )


class TestRowMapping:
    def test_product_from_row(self):
        product = product_from_row(PRODUCT_ROW)
        assert product.category == "pets"
        assert product.price == pytest.approx(2.5)
        assert product.is_active

    def test_location_from_row(self):
        loc = location_from_row({"id": 7, "name": "Markt", "chain": None, "current_visits": 3,
                                 "last_visit_date": "2026-10-01"})
        assert loc.id == "7"
        assert loc.chain == ""
        assert loc.last_visit_date == date(2026, 10, 1)


class TestClient:
    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            SupabaseBackend().list_products()


class TestCatalogAndLocations:
    def test_list_products(self):
        products = _table([PRODUCT_ROW, {**PRODUCT_ROW, "id": "p2", "department": "food"}])
        backend = _make_backend(products=products)
        result = backend.list_products()
        assert [p.id for p in result] == ["p1", "p2"]
        products.order.assert_called_once_with("name")

    def test_list_products_failure(self):
        backend = _make_backend(products=_table(RuntimeError("connection reset")))
        with pytest.raises(PersistenceFailure, match="list_products"):
            backend.list_products()

    def test_record_visit_increments(self):
        markets = _table([{"current_visits": 2, "last_visit_date": "2020-01-01"}], [])
        _make_backend(markets=markets).record_visit("m1", "gl-1")
        markets.update.assert_called_once_with(
            {"current_visits": 3, "last_visit_date": date.today().isoformat()}
        )

    def test_record_visit_once_per_day(self):
        markets = _table([{"current_visits": 2, "last_visit_date": date.today().isoformat()}])
        _make_backend(markets=markets).record_visit("m1", "gl-1")
        markets.update.assert_not_called()

    def test_record_visit_unknown_location(self):
        with pytest.raises(PersistenceFailure, match="unknown location"):
            _make_backend(markets=_table([])).record_visit("nope", "gl-1")


class TestExchangeRecords:
    def test_create_writes_entry_and_items(self, product_factory):
        entries = _table([{"id": "e1"}])
        items = _table([])
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=items)

        assert backend.create(_make_record(product_factory)) == "e1"
        entry = entries.insert.call_args[0][0]
        assert entry["gebietsleiter_id"] == "gl-1"
        assert entry["market_id"] == "m1"
        assert entry["reason"] == "Produkttausch"
        assert entry["status"] == "pending"
        rows = items.insert.call_args[0][0]
        assert [(r["product_id"], r["quantity"], r["item_type"]) for r in rows] == [
            ("p1", 4, "take_out"),
            ("p2", 2, "replace"),
        ]

    def test_fulfilled_record_uses_completed_status(self, product_factory):
        entries = _table([{"id": "e1"}])
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=_table([]))
        backend.create(_make_record(product_factory, status=ExchangeStatus.FULFILLED))
        assert entries.insert.call_args[0][0]["status"] == "completed"

    def test_create_retries_without_missing_column(self, product_factory):
        entries = _table(
            RuntimeError("PGRST204: Could not find the 'total_value' column"),
            [{"id": "e1"}],
        )
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=_table([]))
        assert backend.create(_make_record(product_factory)) == "e1"
        assert entries.insert.call_count == 2
        assert "total_value" not in entries.insert.call_args[0][0]

    def test_create_failure(self, product_factory):
        entries = _table(RuntimeError("permission denied"))
        backend = _make_backend(vorverkauf_entries=entries)
        with pytest.raises(PersistenceFailure, match="create"):
            backend.create(_make_record(product_factory))

    def test_items_failure_rolls_back_entry(self, product_factory):
        entries = _table([{"id": "e1"}], [])
        items = _table(RuntimeError("insert or update on table violates foreign key"))
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=items)

        with pytest.raises(PersistenceFailure, match="create"):
            backend.create(_make_record(product_factory))
        entries.delete.assert_called_once_with()
        entries.eq.assert_called_with("id", "e1")
        assert entries.execute.call_count == 2

    def test_failed_rollback_still_raises(self, product_factory):
        entries = _table([{"id": "e1"}], RuntimeError("network down"))
        items = _table(RuntimeError("timeout"))
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=items)

        with pytest.raises(PersistenceFailure, match="timeout"):
            backend.create(_make_record(product_factory))
        entries.delete.assert_called_once_with()

    def test_fulfill_then_noop(self):
        entries = _table(
            [{"id": "e1", "status": "pending"}],
            [],
            [{"id": "e1", "status": "completed"}],
        )
        backend = _make_backend(vorverkauf_entries=entries)
        assert backend.fulfill("e1") is True
        update = entries.update.call_args[0][0]
        assert update["status"] == "completed"
        assert update["fulfilled_at"] == update["updated_at"]
        assert backend.fulfill("e1") is False
        assert entries.update.call_count == 1

    def test_fulfill_without_fulfilled_at_column(self):
        entries = _table(
            [{"id": "e1", "status": "pending"}],
            RuntimeError("PGRST204: Could not find the 'fulfilled_at' column"),
            [],
        )
        backend = _make_backend(vorverkauf_entries=entries)
        assert backend.fulfill("e1") is True
        assert entries.update.call_count == 2
        assert "fulfilled_at" not in entries.update.call_args[0][0]

    def test_get_reports_fulfilled_at(self):
        entries = _table([{
            "id": "e1",
            "gebietsleiter_id": "gl-1",
            "market_id": "m1",
            "status": "completed",
            "created_at": "2026-10-01T09:30:00",
            "fulfilled_at": "2026-10-02T08:00:00",
        }])
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=_table([]))
        record = backend.get("e1")
        assert record.status == ExchangeStatus.FULFILLED
        assert record.fulfilled_at is not None
        assert record.fulfilled_at.day == 2

    def test_fulfill_unknown(self):
        with pytest.raises(RecordNotFound):
            _make_backend(vorverkauf_entries=_table([])).fulfill("missing")

    def test_list_pending(self):
        entries = _table([{
            "id": "e1",
            "gebietsleiter_id": "gl-1",
            "market_id": "m1",
            "reason": "Produkttausch",
            "notes": None,
            "status": "pending",
            "created_at": "2026-10-01T09:30:00",
        }])
        items = _table([
            {"vorverkauf_entry_id": "e1", "product_id": "p1", "quantity": 4, "item_type": "take_out"},
            {"vorverkauf_entry_id": "e1", "product_id": "p2", "quantity": 1, "item_type": "replace"},
        ])
        products = _table([PRODUCT_ROW, {**PRODUCT_ROW, "id": "p2", "price": "12.00"}])
        backend = _make_backend(vorverkauf_entries=entries, vorverkauf_items=items, products=products)

        records = backend.list_pending("gl-1")
        assert len(records) == 1
        record = records[0]
        assert record.is_pending
        assert [i.product.id for i in record.removed] == ["p1"]
        # No total_value column: derived from the replacement items
        assert record.total_value == pytest.approx(12.0)
        entries.order.assert_called_once_with("created_at", desc=True)
