"""Tests for the manual bundle builder."""

import pytest

from src.bundle_engine.manual_builder import ManualBundleBuilder


class TestManualBundleBuilder:
    def test_overshoot_reported_not_clamped(self, product_factory):
        builder = ManualBundleBuilder(target=10.0, category="pets", subtype="standard")
        builder.add(product_factory("a", 5.0), 3)
        assert builder.value_difference == pytest.approx(5.0)
        assert builder.difference_label == "+€5.00 over target"
        assert builder.progress == 100.0
        assert builder.remaining == 0.0

        bundle = builder.finish()
        assert bundle.value_difference == pytest.approx(5.0)
        assert bundle.difference_label == "+€5.00 over target"

    def test_under_target(self, product_factory):
        builder = ManualBundleBuilder(target=10.0)
        builder.add(product_factory("a", 2.5), 3)
        assert builder.progress == pytest.approx(75.0)
        assert builder.remaining == pytest.approx(2.5)
        assert builder.difference_label == "€2.50 under target"

    def test_repeated_add_accumulates(self, product_factory):
        builder = ManualBundleBuilder(target=10.0)
        a = product_factory("a", 1.0)
        builder.add(a, 2)
        builder.add(a)
        assert [(i.product.id, i.quantity) for i in builder.items] == [("a", 3)]

    def test_set_quantity_zero_removes(self, product_factory):
        builder = ManualBundleBuilder(target=10.0)
        a = product_factory("a", 1.0)
        builder.add(a, 2)
        builder.set_quantity(a, 0)
        assert builder.items == []

    def test_invalid_quantities(self, product_factory):
        builder = ManualBundleBuilder(target=10.0)
        with pytest.raises(ValueError):
            builder.add(product_factory("a", 1.0), 0)
        with pytest.raises(ValueError):
            builder.set_quantity(product_factory("a", 1.0), -1)

    def test_remove_and_clear(self, product_factory):
        builder = ManualBundleBuilder(target=10.0)
        builder.add(product_factory("a", 1.0))
        builder.add(product_factory("b", 1.0))
        builder.remove("a")
        assert [i.product.id for i in builder.items] == ["b"]
        builder.clear()
        assert builder.total_value == 0

    def test_finish(self, product_factory):
        builder = ManualBundleBuilder(target=10.0, category="pets", subtype="standard")
        builder.add(product_factory("a", 5.0))
        builder.add(product_factory("f", 5.0, category="food"))
        bundle = builder.finish()
        assert bundle.id == "manual-a-f"
        assert bundle.strategy == "manual"
        assert bundle.match_score == 100.0
        assert bundle.category_match is False
        assert bundle.affinity_match is True
        assert bundle.difference_label == "on target"

    def test_finish_empty_raises(self):
        with pytest.raises(ValueError, match="empty"):
            ManualBundleBuilder(target=10.0).finish()
