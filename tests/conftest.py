"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator

from models.ledger import ActingUser
from tests.fakes import InMemoryStockStore

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        # Simulate insert - add id and timestamps
        if isinstance(data, dict):
            data = [dict(data)]
        for item in data:
            item["id"] = "test-uuid-123"
            item["created_at"] = datetime.utcnow().isoformat() + "Z"
            item["updated_at"] = datetime.utcnow().isoformat() + "Z"
        self._data = data
        return self

    def update(self, data):
        # Simulate update - merge with existing data
        updated_data = []
        for item in self._data:
            merged = {**item, **data}
            merged["updated_at"] = datetime.utcnow().isoformat() + "Z"
            updated_data.append(merged)
        self._data = updated_data if updated_data else [data]
        return self

    def delete(self):
        return self

    def eq(self, column, value):
        return self

    def neq(self, column, value):
        return self

    def ilike(self, column, pattern):
        return self

    def in_(self, column, values):
        return self

    def gte(self, column, value):
        return self

    def lte(self, column, value):
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, **kwargs):
        return self

    def range(self, start, end):
        return self

    def limit(self, count):
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._is_single:
            # Return first item or empty for single()
            data = self._data[0] if self._data else None
            return MockSupabaseResponse(
                data=data,
                count=1 if data else 0
            )
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._data.copy(), self._count)

    def insert(self, data):
        query = MockSupabaseQuery(self._data.copy(), self._count)
        return query.insert(data)

    def update(self, data):
        # For update, pass the existing data so it can be merged
        query = MockSupabaseQuery(self._data.copy(), self._count)
        return query.update(data)

    def delete(self):
        return MockSupabaseQuery(self._data.copy(), self._count)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(config["data"], config["count"])


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "name": "Bolt", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.product_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.registry_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


# ===================
# STOCK ENGINE FIXTURES
# ===================

@pytest.fixture
def memory_store() -> InMemoryStockStore:
    """
    In-memory stock store seeded with two locations.

    Usage:
        def test_something(memory_store):
            memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))
    """
    store = InMemoryStockStore()
    store.add_location("loc-a", "Main Warehouse")
    store.add_location("loc-b", "Shop Floor")
    return store


@pytest.fixture
def admin_user() -> ActingUser:
    return ActingUser(user_id="user-1", display_name="Ana Admin", role="admin")


@pytest.fixture
def editor_user() -> ActingUser:
    return ActingUser(user_id="user-2", display_name="Eli Editor", role="editor")


@pytest.fixture
def sample_product_data() -> dict:
    """Sample product row for testing."""
    return {
        "id": "test-uuid-123",
        "name": "Hex Bolt 8mm",
        "category_id": "cat-1",
        "supplier_id": None,
        "unit": "un",
        "unit_cost": "2.50",
        "min_stock": 10,
        "locations": {"loc-a": 30, "loc-b": 20},
        "version": 3,
        "created_at": "2025-12-05T10:00:00Z",
        "updated_at": "2025-12-05T10:00:00Z"
    }


@pytest.fixture
def sample_products_list() -> list:
    """Sample list of product rows for testing."""
    return [
        {
            "id": "uuid-1",
            "name": "Hex Bolt 8mm",
            "category_id": "cat-1",
            "unit_cost": "2.50",
            "min_stock": 10,
            "locations": {"loc-a": 30},
            "version": 1,
        },
        {
            "id": "uuid-2",
            "name": "Washer 8mm",
            "category_id": "cat-1",
            "unit_cost": "0.10",
            "min_stock": 100,
            "locations": {"loc-a": 40, "loc-b": 10},
            "version": 4,
        },
        {
            "id": "uuid-3",
            "name": "Wood Glue 1L",
            "category_id": "cat-2",
            "unit_cost": None,
            "min_stock": None,
            "locations": None,
            "version": 0,
        }
    ]


# ===================
# API TEST CLIENT
# ===================

ADMIN_HEADERS = {"X-User-Id": "user-1", "X-User-Name": "Ana Admin", "X-User-Role": "admin"}
VIEWER_HEADERS = {"X-User-Id": "user-3", "X-User-Name": "Vic Viewer", "X-User-Role": "viewer"}


@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
