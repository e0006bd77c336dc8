"""
Unit tests for StockMutationService.

Run: pytest tests/unit/test_stock_mutation_service.py -v
"""

import threading

import pytest

from services.stock_mutation_service import StockMutationService
from services.report_service import replay_quantity, to_entries
from models.ledger import MovementType
from exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransferError,
    LocationNotFoundError,
    ProductNotFoundError,
)

from tests.factories import ProductFactory
from tests.fakes import BarrierStockStore, InMemoryStockStore


@pytest.fixture
def service(memory_store) -> StockMutationService:
    return StockMutationService(store=memory_store, max_attempts=3)


class NeverCommitsStore(InMemoryStockStore):
    """Every commit loses the version race."""

    def commit_mutation(self, write, entries):
        self.commit_attempts += 1
        return None


class TestApplyEntry:
    """Tests for StockMutationService.apply_entry()"""

    def test_entry_into_empty_location_is_initial_entry(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1"))

        result = service.apply_entry("p1", "loc-a", 12, "delivery", admin_user)

        assert result.product.locations == {"loc-a": 12}
        assert result.product.total_quantity == 12
        assert result.product.version == 1
        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.movement_type == MovementType.INITIAL_ENTRY
        assert entry.quantity_delta == 12
        assert entry.quantity_before == 0
        assert entry.quantity_after == 12
        assert entry.location_name == "Main Warehouse"
        assert entry.user_name == "Ana Admin"
        assert entry.reason == "delivery"

    def test_entry_into_stocked_location_is_manual_adjustment(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 5}))

        result = service.apply_entry("p1", "loc-a", 3, None, admin_user)

        assert result.entries[0].movement_type == MovementType.MANUAL_ADJUSTMENT
        assert result.product.locations["loc-a"] == 8

    @pytest.mark.parametrize("quantity", [0, -4, 1.5, True])
    def test_entry_rejects_invalid_quantity(self, service, memory_store, admin_user, quantity):
        memory_store.add_product(ProductFactory.create(id="p1"))

        with pytest.raises(InvalidQuantityError) as exc_info:
            service.apply_entry("p1", "loc-a", quantity, None, admin_user)

        assert exc_info.value.status_code == 422
        assert memory_store.ledger == []

    def test_entry_unknown_product(self, service, admin_user):
        with pytest.raises(ProductNotFoundError):
            service.apply_entry("missing", "loc-a", 1, None, admin_user)

    def test_entry_unknown_location(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1"))

        with pytest.raises(LocationNotFoundError):
            service.apply_entry("p1", "nowhere", 1, None, admin_user)


class TestApplyExit:
    """Tests for StockMutationService.apply_exit()"""

    def test_exit_decrements_location(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        result = service.apply_exit("p1", "loc-a", 4, "sale", admin_user)

        assert result.product.locations["loc-a"] == 6
        entry = result.entries[0]
        assert entry.movement_type == MovementType.EXIT
        assert entry.quantity_delta == -4
        assert entry.quantity == 4
        assert (entry.quantity_before, entry.quantity_after) == (10, 6)

    def test_exit_more_than_available_fails_without_writing(self, service, memory_store, admin_user):
        """3 available, 5 requested: error names both numbers, nothing changes."""
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 3}))

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_exit("p1", "loc-a", 5, None, admin_user)

        assert exc_info.value.message == "insufficient stock: 3 available, 5 requested"
        assert exc_info.value.details["available"] == 3
        assert exc_info.value.details["requested"] == 5
        assert memory_store.products["p1"]["locations"] == {"loc-a": 3}
        assert memory_store.products["p1"]["version"] == 0
        assert memory_store.ledger == []

    def test_exit_from_absent_location_is_insufficient(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 3}))

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_exit("p1", "loc-b", 1, None, admin_user)

        assert exc_info.value.details["available"] == 0

    def test_exit_entire_quantity_leaves_zero(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 7}))

        result = service.apply_exit("p1", "loc-a", 7, None, admin_user)

        assert result.product.locations["loc-a"] == 0
        assert result.product.total_quantity == 0


class TestApplyTransfer:
    """Tests for StockMutationService.apply_transfer()"""

    def test_transfer_moves_stock_and_writes_two_entries(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        result = service.apply_transfer("p1", "loc-a", "loc-b", 4, admin_user)

        assert result.product.locations == {"loc-a": 6, "loc-b": 4}
        assert result.product.total_quantity == 10
        by_type = {e.movement_type: e for e in result.entries}
        assert set(by_type) == {MovementType.TRANSFER_OUT, MovementType.TRANSFER_IN}

        out_leg = by_type[MovementType.TRANSFER_OUT]
        in_leg = by_type[MovementType.TRANSFER_IN]
        assert out_leg.location_id == "loc-a"
        assert out_leg.quantity_delta == -4
        assert out_leg.counterpart_location_id == "loc-b"
        assert out_leg.reason == "transfer to Shop Floor"
        assert in_leg.location_id == "loc-b"
        assert in_leg.quantity_delta == 4
        assert in_leg.counterpart_location_id == "loc-a"
        assert in_leg.reason == "transfer from Main Warehouse"

    def test_transfer_is_one_commit(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        service.apply_transfer("p1", "loc-a", "loc-b", 4, admin_user)

        assert memory_store.commit_attempts == 1
        assert memory_store.products["p1"]["version"] == 1

    def test_transfer_same_location_rejected(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        with pytest.raises(InvalidTransferError):
            service.apply_transfer("p1", "loc-a", "loc-a", 1, admin_user)

        assert memory_store.ledger == []

    def test_transfer_insufficient_source(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 2}))

        with pytest.raises(InsufficientStockError):
            service.apply_transfer("p1", "loc-a", "loc-b", 3, admin_user)

        assert memory_store.products["p1"]["locations"] == {"loc-a": 2}


class TestApplyAdjustment:
    """Tests for StockMutationService.apply_adjustment()"""

    def test_adjustment_sets_quantity(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        result = service.apply_adjustment("p1", "loc-a", 7, "breakage", admin_user)

        assert result.product.locations["loc-a"] == 7
        entry = result.entries[0]
        assert entry.movement_type == MovementType.MANUAL_ADJUSTMENT
        assert entry.quantity_delta == -3
        assert (entry.quantity_before, entry.quantity_after) == (10, 7)

    def test_adjustment_to_same_quantity_is_noop(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        result = service.apply_adjustment("p1", "loc-a", 10, None, admin_user)

        assert result.entries == []
        assert memory_store.commit_attempts == 0
        assert memory_store.products["p1"]["version"] == 0
        assert memory_store.ledger == []

    def test_adjustment_rejects_negative_target(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        with pytest.raises(InvalidQuantityError):
            service.apply_adjustment("p1", "loc-a", -1, None, admin_user)

    def test_adjustment_to_zero_allowed(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))

        result = service.apply_adjustment("p1", "loc-a", 0, None, admin_user)

        assert result.product.locations["loc-a"] == 0


class TestLedgerInvariants:
    """Quantities stay consistent with the ledger across operation sequences."""

    def test_replaying_ledger_reproduces_quantities(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1"))

        service.apply_entry("p1", "loc-a", 20, None, admin_user)
        service.apply_exit("p1", "loc-a", 5, None, admin_user)
        service.apply_transfer("p1", "loc-a", "loc-b", 6, admin_user)
        service.apply_entry("p1", "loc-b", 2, None, admin_user)
        service.apply_adjustment("p1", "loc-a", 8, None, admin_user)
        service.apply_exit("p1", "loc-b", 3, None, admin_user)

        entries = to_entries(memory_store.ledger)
        product = memory_store.products["p1"]
        for location_id, quantity in product["locations"].items():
            assert replay_quantity(entries, "p1", location_id) == quantity
        assert product["locations"] == {"loc-a": 8, "loc-b": 5}

    def test_transfers_conserve_total(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 9, "loc-b": 1}))

        service.apply_transfer("p1", "loc-a", "loc-b", 4, admin_user)
        service.apply_transfer("p1", "loc-b", "loc-a", 2, admin_user)

        assert sum(memory_store.products["p1"]["locations"].values()) == 10

    def test_every_entry_records_actor_and_time(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1"))

        service.apply_entry("p1", "loc-a", 2, None, admin_user)
        service.apply_exit("p1", "loc-a", 1, None, admin_user)

        for entry in to_entries(memory_store.ledger):
            assert entry.user_id == "user-1"
            assert entry.created_at is not None
            assert entry.quantity_after == entry.quantity_before + entry.quantity_delta


class TestConcurrency:
    """Optimistic retries and lost-update protection."""

    def test_concurrent_exits_cannot_oversell(self, admin_user):
        """Two exits of 6 against 10: exactly one succeeds."""
        store = BarrierStockStore(parties=2)
        store.add_location("loc-a", "Main Warehouse")
        store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))
        service = StockMutationService(store=store, max_attempts=3)

        outcomes = []

        def worker():
            try:
                service.apply_exit("p1", "loc-a", 6, None, admin_user)
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("insufficient")

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert store.products["p1"]["locations"]["loc-a"] == 4
        assert store.commit_conflicts == 1
        assert len(store.ledger) == 1

    def test_retries_exhausted_raises_conflict(self, admin_user):
        store = NeverCommitsStore()
        store.add_location("loc-a", "Main Warehouse")
        store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10}))
        service = StockMutationService(store=store, max_attempts=4)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            service.apply_exit("p1", "loc-a", 1, None, admin_user)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["retryable"] is True
        assert store.commit_attempts == 4
        assert store.ledger == []


class TestScenarios:
    """End-to-end movement scenarios against one product."""

    def test_entry_then_exit(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1"))

        service.apply_entry("p1", "loc-a", 20, None, admin_user)
        result = service.apply_exit("p1", "loc-a", 5, "sale", admin_user)

        assert result.product.total_quantity == 15
        entries = sorted(to_entries(memory_store.ledger), key=lambda e: e.quantity_before)
        assert [(e.movement_type, e.quantity_delta, e.quantity_before, e.quantity_after) for e in entries] == [
            (MovementType.INITIAL_ENTRY, 20, 0, 20),
            (MovementType.EXIT, -5, 20, 15),
        ]
        assert entries[1].reason == "sale"

    def test_transfer(self, service, memory_store, admin_user):
        memory_store.add_product(ProductFactory.create(id="p1", locations={"loc-a": 10, "loc-b": 0}))

        result = service.apply_transfer("p1", "loc-a", "loc-b", 4, admin_user)

        assert result.product.locations == {"loc-a": 6, "loc-b": 4}
        assert result.product.total_quantity == 10
        assert len(memory_store.ledger) == 2
        legs = {(e.movement_type, e.location_id, e.quantity_before, e.quantity_after) for e in result.entries}
        assert legs == {
            (MovementType.TRANSFER_OUT, "loc-a", 10, 6),
            (MovementType.TRANSFER_IN, "loc-b", 0, 4),
        }
