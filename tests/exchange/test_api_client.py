"""Tests for the REST API backend (requests.Session mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.common.config import ApiSettings
from src.common.http_client import HTTPClient
from src.common.models import ExchangeRecord, ExchangeStatus, LineItem
from src.exchange.api_client import ApiBackend, product_from_api
from src.exchange.errors import PersistenceFailure, RecordNotFound

BASE_URL = "http://api.test/api"

API_PRODUCT = {
    "id": "p1",
    "name": "Tiernahrung Display",
    "department": "pets",
    "productType": "display",
    "weight": "",
    "palletSize": 24,
    "price": 49.9,
}

API_ENTRY = {
    "id": "e1",
    "glId": "gl-1",
    "marketId": "m1",
    "reason": "Produkttausch",
    "notes": None,
    "status": "pending",
    "items": [
        {"id": 1, "productId": "p1", "productName": "Tiernahrung Display", "quantity": 1, "itemType": "take_out"},
        {"id": 2, "productId": "gone", "productName": "Altprodukt", "quantity": 2, "itemType": "replace"},
    ],
    "createdAt": "2026-10-01T09:30:00",
}


def _response(payload=None, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = b"" if payload is None else b"{}"
    resp.json.return_value = payload
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    return resp


def _make_backend(*responses, max_retries=1):
    session = MagicMock()
    session.request.side_effect = list(responses)
    http = HTTPClient(ApiSettings(base_url=BASE_URL, max_retries=max_retries), session=session)
    return ApiBackend(http=http), session


def _make_record(product_factory) -> ExchangeRecord:
    return ExchangeRecord(
        location_id="m1",
        operator_id="gl-1",
        removed=[LineItem(product=product_factory("p1", 2.5), quantity=4)],
        replacement=[LineItem(product=product_factory("p2", 5.0), quantity=2)],
        total_value=10.0,
        status=ExchangeStatus.PENDING,
        notes="Regal 3",
    )


class TestMapping:
    def test_product_from_api(self):
        product = product_from_api(API_PRODUCT)
        assert product.subtype == "display"
        assert product.pallet_size == 24
        assert product.category == "pets"


class TestCatalogAndLocations:
    def test_list_products(self):
        backend, session = _make_backend(_response([API_PRODUCT]))
        assert [p.id for p in backend.list_products()] == ["p1"]
        method, url = session.request.call_args[0]
        assert (method, url) == ("GET", f"{BASE_URL}/products")

    def test_list_locations(self):
        backend, _ = _make_backend(_response([{"id": "m1", "name": "Markt", "current_visits": 2}]))
        assert backend.list()[0].current_visits == 2

    def test_record_visit(self):
        backend, session = _make_backend(_response({"incremented": False}))
        backend.record_visit("m1", "gl-1")
        assert session.request.call_args[0] == ("POST", f"{BASE_URL}/markets/m1/visit")
        assert session.request.call_args[1]["json"] == {"gl_id": "gl-1"}

    def test_network_error(self):
        backend, _ = _make_backend(requests.ConnectionError("down"))
        with pytest.raises(PersistenceFailure, match="list_products"):
            backend.list_products()


class TestExchangeRecords:
    def test_create(self, product_factory):
        backend, session = _make_backend(_response({"id": "e1", "itemsCount": 2}))
        assert backend.create(_make_record(product_factory)) == "e1"
        payload = session.request.call_args[1]["json"]
        assert payload["gebietsleiter_id"] == "gl-1"
        assert payload["market_id"] == "m1"
        assert payload["status"] == "pending"
        assert payload["take_out_items"] == [{"product_id": "p1", "quantity": 4}]
        assert payload["replace_items"] == [{"product_id": "p2", "quantity": 2}]

    def test_create_without_id(self, product_factory):
        backend, _ = _make_backend(_response({"message": "ok"}))
        with pytest.raises(PersistenceFailure, match="no entry id"):
            backend.create(_make_record(product_factory))

    def test_create_server_error(self, product_factory):
        backend, _ = _make_backend(_response({"error": "boom"}, status_code=500))
        with pytest.raises(PersistenceFailure):
            backend.create(_make_record(product_factory))

    @patch("src.common.http_client.time.sleep")
    def test_create_sent_once_on_server_error(self, mock_sleep, product_factory):
        backend, session = _make_backend(
            *[_response({"error": "boom"}, status_code=500)] * 3, max_retries=3
        )
        with pytest.raises(PersistenceFailure, match="create"):
            backend.create(_make_record(product_factory))
        assert session.request.call_count == 1

    @patch("src.common.http_client.time.sleep")
    def test_fulfill_patch_retried(self, mock_sleep):
        backend, session = _make_backend(
            _response(API_ENTRY),
            _response(status_code=503),
            _response({"status": "completed"}),
            max_retries=3,
        )
        assert backend.fulfill("e1") is True
        assert session.request.call_count == 3

    def test_get_resolves_products_from_catalog(self):
        backend, _ = _make_backend(_response(API_ENTRY), _response([API_PRODUCT]))
        record = backend.get("e1")
        assert record.is_pending
        assert record.removed[0].product.price == pytest.approx(49.9)
        # Unknown product falls back to the entry's label
        assert record.replacement[0].product.name == "Altprodukt"

    def test_get_not_found(self):
        backend, _ = _make_backend(_response({"error": "Entry not found"}, status_code=404))
        with pytest.raises(RecordNotFound):
            backend.get("missing")

    def test_fulfill_then_noop(self):
        backend, session = _make_backend(
            _response(API_ENTRY),
            _response({"status": "completed"}),
            _response({**API_ENTRY, "status": "completed"}),
        )
        assert backend.fulfill("e1") is True
        assert session.request.call_args[0] == ("PATCH", f"{BASE_URL}/vorverkauf/e1")
        assert backend.fulfill("e1") is False
        assert session.request.call_count == 3

    def test_entry_without_status_reads_as_completed(self):
        legacy = {k: v for k, v in API_ENTRY.items() if k != "status"}
        backend, session = _make_backend(
            _response(legacy), _response([API_PRODUCT]), _response(legacy), _response([legacy])
        )
        assert backend.get("e1").status == ExchangeStatus.FULFILLED
        assert backend.fulfill("e1") is False
        assert backend.list_pending("gl-1") == []
        assert all(c[0][0] == "GET" for c in session.request.call_args_list)

    def test_list_pending_filters_status(self):
        completed = {**API_ENTRY, "id": "e2", "status": "completed"}
        backend, session = _make_backend(_response([API_ENTRY, completed]), _response([API_PRODUCT]))
        records = backend.list_pending("gl-1")
        assert [r.id for r in records] == ["e1"]
        assert session.request.call_args_list[0][1]["params"] == {"glId": "gl-1", "status": "pending"}
