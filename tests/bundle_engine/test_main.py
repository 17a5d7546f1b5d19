"""Tests for the bundle engine CLI."""

import json
from unittest.mock import patch

import pytest

from src.bundle_engine.main import build_line_items, load_catalog_file, main, parse_item_spec


class TestParseItemSpec:
    def test_pid_and_quantity(self):
        assert parse_item_spec("p-101:4") == ("p-101", 4)

    def test_default_quantity(self):
        assert parse_item_spec("p-101", default_quantity=1) == ("p-101", 1)

    def test_quantity_required(self):
        with pytest.raises(ValueError, match="PID:QTY"):
            parse_item_spec("p-101")

    def test_bad_quantity(self):
        with pytest.raises(ValueError, match="integer"):
            parse_item_spec("p-101:x")
        with pytest.raises(ValueError):
            parse_item_spec("p-101:-2")


class TestBuildLineItems:
    def test_unknown_product(self, sample_catalog):
        with pytest.raises(KeyError):
            build_line_items(["zz:1"], {p.id: p for p in sample_catalog})

    def test_builds_items(self, sample_catalog):
        items = build_line_items(["p1:4", "p3"], {p.id: p for p in sample_catalog}, default_quantity=1)
        assert [(i.product.id, i.quantity) for i in items] == [("p1", 4), ("p3", 1)]


class TestMain:
    def test_writes_suggestions(self, project_root, tmp_path):
        catalog = project_root / "fixtures" / "sample_catalog.json"
        output = tmp_path / "out" / "suggestions.json"
        argv = ["main", "--catalog", str(catalog), "--removed", "p-101:4", "--output", str(output)]
        with patch("sys.argv", argv):
            main()
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["policy"] == "replacement"
        assert data["target"] == 10.0
        assert 0 < len(data["suggestions"]) <= 5

    def test_unknown_product_exits(self, project_root):
        catalog = project_root / "fixtures" / "sample_catalog.json"
        with patch("sys.argv", ["main", "--catalog", str(catalog), "--removed", "nope:1"]):
            with pytest.raises(SystemExit):
                main()

    def test_load_catalog_file_list_form(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text(json.dumps([{"id": "a", "name": "A", "category": "pets", "price": 1.0}]), encoding="utf-8")
        assert [p.id for p in load_catalog_file(path)] == ["a"]
