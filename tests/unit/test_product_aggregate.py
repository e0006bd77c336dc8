"""
Unit tests for product aggregate helpers.
"""

from models.product import ProductResponse
from services.product_aggregate import (
    is_low_stock,
    location_quantities,
    main_location,
    total_quantity,
)


class TestTotals:

    def test_total_sums_locations(self):
        assert total_quantity({"locations": {"a": 3, "b": 4}}) == 7

    def test_missing_and_null_quantities_are_zero(self):
        assert total_quantity({"locations": None}) == 0
        assert location_quantities({"locations": {"a": None, "b": "x", "c": "5"}}) == {
            "a": 0, "b": 0, "c": 5
        }

    def test_negative_legacy_quantities_are_clamped(self):
        row = {"id": "p1", "locations": {"a": -4, "b": 6}}

        assert location_quantities(row) == {"a": 0, "b": 6}
        assert total_quantity(row) == 6

    def test_model_clamps_negative_quantities(self, sample_product_data):
        product = ProductResponse(**{**sample_product_data, "locations": {"loc-a": -5, "loc-b": 20}})

        assert product.locations == {"loc-a": 0, "loc-b": 20}
        assert product.total_quantity == 20

    def test_works_on_models(self, sample_product_data):
        product = ProductResponse(**sample_product_data)

        assert total_quantity(product) == 50
        assert product.total_quantity == 50


class TestLowStock:

    def test_at_threshold_is_low(self):
        assert is_low_stock({"min_stock": 5, "locations": {"a": 5}})

    def test_above_threshold_is_not_low(self):
        assert not is_low_stock({"min_stock": 5, "locations": {"a": 6}})

    def test_zero_threshold_disables(self):
        assert not is_low_stock({"min_stock": 0, "locations": {}})
        assert not is_low_stock({"min_stock": None, "locations": {}})


class TestMainLocation:

    def test_fullest_location(self):
        assert main_location({"locations": {"a": 2, "b": 9, "c": 4}}) == "b"

    def test_first_wins_ties(self):
        assert main_location({"locations": {"a": 5, "b": 5}}) == "a"

    def test_empty_product_has_none(self):
        assert main_location({"locations": {"a": 0}}) is None
