"""
Unit tests for RegistryService.

Run: pytest tests/unit/test_registry_service.py -v
"""

import pytest

from services.registry_service import RegistryService
from models.registry import Registry, RegistryItemCreate, RegistryItemUpdate
from exceptions import ConflictError, DuplicateError, RegistryItemNotFoundError

from tests.factories import LocationFactory, ProductFactory


class TestRegistryRead:

    def test_get_all(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("categories", [
            {"id": "c1", "name": "Fasteners"},
            {"id": "c2", "name": "Adhesives"},
        ])

        items = RegistryService(Registry.CATEGORIES).get_all()

        assert [i.name for i in items] == ["Fasteners", "Adhesives"]

    def test_get_by_id_missing(self, mock_db, mock_supabase):
        with pytest.raises(RegistryItemNotFoundError) as exc_info:
            RegistryService(Registry.SUPPLIERS).get_by_id("nope")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "SUPPLIER_NOT_FOUND"


class TestRegistryWrite:

    def test_create(self, mock_db, mock_supabase):
        item = RegistryService(Registry.LOCATIONS).create(RegistryItemCreate(name="Back Room"))

        assert item.id == "test-uuid-123"
        assert item.name == "Back Room"

    def test_create_duplicate_name(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("categories", [{"id": "c1", "name": "Fasteners"}])

        with pytest.raises(DuplicateError) as exc_info:
            RegistryService(Registry.CATEGORIES).create(RegistryItemCreate(name="fasteners"))

        assert exc_info.value.status_code == 409

    def test_supplier_fields_dropped_outside_suppliers(self, mock_db, mock_supabase):
        service = RegistryService(Registry.CATEGORIES)

        row = service._row(RegistryItemCreate(name="Tools", email="x@example.com"))

        assert row == {"name": "Tools"}

    def test_supplier_keeps_contact_fields(self, mock_db, mock_supabase):
        service = RegistryService(Registry.SUPPLIERS)

        row = service._row(RegistryItemCreate(name="Acme", email="sales@acme.test"))

        assert row == {"name": "Acme", "email": "sales@acme.test"}

    def test_update(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("suppliers", [{"id": "s1", "name": "Acme"}])

        item = RegistryService(Registry.SUPPLIERS).update("s1", RegistryItemUpdate(phone="555"))

        assert item.phone == "555"


class TestLocationDelete:

    def test_location_with_stock_cannot_be_deleted(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("locations", [LocationFactory.create(id="loc-a")])
        mock_supabase.set_table_data("products", [
            ProductFactory.create(id="p1", locations={"loc-a": 3}),
        ])

        with pytest.raises(ConflictError) as exc_info:
            RegistryService(Registry.LOCATIONS).delete("loc-a")

        assert exc_info.value.code == "LOCATION_HAS_STOCK"
        assert exc_info.value.details["product_ids"] == ["p1"]

    def test_empty_location_can_be_deleted(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("locations", [LocationFactory.create(id="loc-a")])
        mock_supabase.set_table_data("products", [
            ProductFactory.create(id="p1", locations={"loc-a": 0, "loc-b": 8}),
        ])

        assert RegistryService(Registry.LOCATIONS).delete("loc-a") is True

    def test_category_delete_skips_stock_check(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("categories", [{"id": "c1", "name": "Fasteners"}])
        mock_supabase.set_table_data("products", [
            ProductFactory.create(id="p1", category_id="c1", locations={"c1": 3}),
        ])

        assert RegistryService(Registry.CATEGORIES).delete("c1") is True
