"""
Stock Mutation Service - the only path that changes product quantities.

Every operation is one optimistic read-modify-write transaction:

1. Read the product (locations map + version)
2. Validate against that transaction-local read and compute the new map
   plus the ledger entries describing the change
3. Commit map and entries together, conditional on the version read in 1
4. On a version conflict, start over from 1 with fresh state

Two concurrent exits therefore serialize: the loser re-reads the winner's
result and is re-validated against it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

import structlog

from config import settings
from models.ledger import ActingUser, LedgerEntry, MovementType
from models.product import ProductResponse
from models.stock import StockMutationResponse
from services.stock_store import ProductWrite, StockStore, get_stock_store
from exceptions import (
    ProductNotFoundError,
    LocationNotFoundError,
    InvalidQuantityError,
    InsufficientStockError,
    InvalidTransferError,
    ConcurrencyConflictError,
)

logger = structlog.get_logger(__name__)


@dataclass
class MutationPlan:
    """Outcome of planning a mutation against one read of the product."""

    locations: dict[str, int]
    entries: list[LedgerEntry] = field(default_factory=list)


def build_ledger_entry(
    product: ProductResponse,
    location_id: str,
    location_name: Optional[str],
    movement_type: MovementType,
    quantity_before: int,
    quantity_delta: int,
    acting_user: ActingUser,
    reason: Optional[str] = None,
    counterpart_location_id: Optional[str] = None,
    count_session_id: Optional[str] = None,
) -> LedgerEntry:
    """Ledger entry with product/location names denormalized at write time."""
    return LedgerEntry(
        product_id=product.id,
        product_name=product.name,
        location_id=location_id,
        location_name=location_name,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        quantity_before=quantity_before,
        quantity_after=quantity_before + quantity_delta,
        counterpart_location_id=counterpart_location_id,
        count_session_id=count_session_id,
        user_id=acting_user.user_id,
        user_name=acting_user.label,
        reason=reason,
        created_at=datetime.now(timezone.utc),
    )


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


def _require_non_negative(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise InvalidQuantityError(quantity, allow_zero=True)
    return quantity


class StockMutationService:
    """
    Stock mutation engine.

    Core methods:
    - apply_entry: Receive stock into a location
    - apply_exit: Issue stock out of a location
    - apply_transfer: Move stock between two locations of one product
    - apply_adjustment: Set a location's quantity directly
    - open_product: Create a product with its opening stock
    """

    def __init__(
        self,
        store: Optional[StockStore] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store or get_stock_store()
        self.max_attempts = max_attempts or settings.stock_transaction_max_attempts

    # ===================
    # OPERATIONS
    # ===================

    def apply_entry(
        self,
        product_id: str,
        location_id: str,
        quantity: int,
        reason: Optional[str],
        acting_user: ActingUser,
    ) -> StockMutationResponse:
        """
        Add stock to a location.

        Recorded as initial_entry when the location held nothing before,
        manual_adjustment otherwise.

        Raises:
            InvalidQuantityError: quantity <= 0
            ProductNotFoundError, LocationNotFoundError
        """
        _require_positive(quantity)
        location_name = self._location_name(location_id)

        def plan(product: ProductResponse) -> MutationPlan:
            before = product.locations.get(location_id, 0)
            movement_type = (
                MovementType.INITIAL_ENTRY if before == 0 else MovementType.MANUAL_ADJUSTMENT
            )
            return MutationPlan(
                locations={**product.locations, location_id: before + quantity},
                entries=[
                    build_ledger_entry(
                        product, location_id, location_name, movement_type,
                        before, quantity, acting_user, reason,
                    )
                ],
            )

        return self._run("stock_entry", product_id, plan)

    def apply_exit(
        self,
        product_id: str,
        location_id: str,
        quantity: int,
        reason: Optional[str],
        acting_user: ActingUser,
    ) -> StockMutationResponse:
        """
        Remove stock from a location.

        Raises:
            InvalidQuantityError: quantity <= 0
            InsufficientStockError: location holds less than quantity
            ProductNotFoundError, LocationNotFoundError
        """
        _require_positive(quantity)
        location_name = self._location_name(location_id)

        def plan(product: ProductResponse) -> MutationPlan:
            before = product.locations.get(location_id, 0)
            if before < quantity:
                raise InsufficientStockError(product.id, location_id, before, quantity)
            return MutationPlan(
                locations={**product.locations, location_id: before - quantity},
                entries=[
                    build_ledger_entry(
                        product, location_id, location_name, MovementType.EXIT,
                        before, -quantity, acting_user, reason,
                    )
                ],
            )

        return self._run("stock_exit", product_id, plan)

    def apply_transfer(
        self,
        product_id: str,
        from_location_id: str,
        to_location_id: str,
        quantity: int,
        acting_user: ActingUser,
        reason: Optional[str] = None,
    ) -> StockMutationResponse:
        """
        Move stock between two locations of the same product.

        Both legs live in one product document, so this is a single-document
        transaction writing exactly two ledger entries.

        Raises:
            InvalidTransferError: source == destination
            InvalidQuantityError: quantity <= 0
            InsufficientStockError: source holds less than quantity
        """
        if from_location_id == to_location_id:
            raise InvalidTransferError(from_location_id)
        _require_positive(quantity)
        from_name = self._location_name(from_location_id)
        to_name = self._location_name(to_location_id)

        def plan(product: ProductResponse) -> MutationPlan:
            from_before = product.locations.get(from_location_id, 0)
            to_before = product.locations.get(to_location_id, 0)
            if from_before < quantity:
                raise InsufficientStockError(product.id, from_location_id, from_before, quantity)
            return MutationPlan(
                locations={
                    **product.locations,
                    from_location_id: from_before - quantity,
                    to_location_id: to_before + quantity,
                },
                entries=[
                    build_ledger_entry(
                        product, from_location_id, from_name, MovementType.TRANSFER_OUT,
                        from_before, -quantity, acting_user,
                        reason or f"transfer to {to_name or to_location_id}",
                        counterpart_location_id=to_location_id,
                    ),
                    build_ledger_entry(
                        product, to_location_id, to_name, MovementType.TRANSFER_IN,
                        to_before, quantity, acting_user,
                        reason or f"transfer from {from_name or from_location_id}",
                        counterpart_location_id=from_location_id,
                    ),
                ],
            )

        return self._run("stock_transfer", product_id, plan)

    def apply_adjustment(
        self,
        product_id: str,
        location_id: str,
        new_quantity: int,
        reason: Optional[str],
        acting_user: ActingUser,
    ) -> StockMutationResponse:
        """
        Set a location's quantity to new_quantity.

        A zero delta writes nothing and returns the product unchanged.

        Raises:
            InvalidQuantityError: new_quantity < 0
        """
        _require_non_negative(new_quantity)
        location_name = self._location_name(location_id)

        def plan(product: ProductResponse) -> MutationPlan:
            before = product.locations.get(location_id, 0)
            delta = new_quantity - before
            if delta == 0:
                return MutationPlan(locations=product.locations)
            return MutationPlan(
                locations={**product.locations, location_id: new_quantity},
                entries=[
                    build_ledger_entry(
                        product, location_id, location_name, MovementType.MANUAL_ADJUSTMENT,
                        before, delta, acting_user, reason,
                    )
                ],
            )

        return self._run("stock_adjustment", product_id, plan)

    def open_product(
        self,
        fields: dict,
        initial_quantities: dict[str, int],
        reason: Optional[str],
        acting_user: ActingUser,
    ) -> StockMutationResponse:
        """
        Create a product together with its opening stock in one commit.

        Every location is resolved before anything is written, and the
        product row and its initial_entry rows are inserted atomically, so a
        failure leaves no product behind.

        Raises:
            InvalidQuantityError: a negative opening quantity
            LocationNotFoundError: an unknown location id
        """
        opening = {
            location_id: quantity
            for location_id, quantity in initial_quantities.items()
            if _require_non_negative(quantity) > 0
        }
        location_names = {
            location_id: self._location_name(location_id) for location_id in opening
        }

        row = {**fields, "id": fields.get("id") or str(uuid4()), "locations": opening, "version": 0}
        product = ProductResponse(**row)
        entries = [
            build_ledger_entry(
                product, location_id, location_names[location_id],
                MovementType.INITIAL_ENTRY, 0, quantity, acting_user, reason,
            )
            for location_id, quantity in opening.items()
        ]

        result = self.store.create_product(row, [entry.to_row() for entry in entries])
        logger.info(
            "product_opened",
            product_id=product.id,
            locations=len(opening),
            entries=len(result.entries),
        )
        return StockMutationResponse(
            product=ProductResponse(**result.product),
            entries=[LedgerEntry(**r) for r in result.entries],
        )

    # ===================
    # TRANSACTION RUNNER
    # ===================

    def _location_name(self, location_id: str) -> Optional[str]:
        location = self.store.get_location(location_id)
        if location is None:
            raise LocationNotFoundError(location_id)
        return location.get("name")

    def _run(
        self,
        operation: str,
        product_id: str,
        plan_fn: Callable[[ProductResponse], MutationPlan],
    ) -> StockMutationResponse:
        """
        Execute plan_fn inside an optimistic transaction on one product.

        plan_fn may raise a domain error, which aborts with nothing written.
        """
        for attempt in range(1, self.max_attempts + 1):
            row = self.store.get_product(product_id)
            if row is None:
                raise ProductNotFoundError(product_id)
            product = ProductResponse(**row)

            plan = plan_fn(product)
            if not plan.entries and plan.locations == product.locations:
                logger.info(f"{operation}_noop", product_id=product_id)
                return StockMutationResponse(product=product, entries=[])

            result = self.store.commit_mutation(
                ProductWrite(
                    product_id=product.id,
                    expected_version=product.version,
                    locations=plan.locations,
                ),
                [entry.to_row() for entry in plan.entries],
            )
            if result is not None:
                entries = [LedgerEntry(**row) for row in result.entries]
                logger.info(
                    f"{operation}_applied",
                    product_id=product_id,
                    attempt=attempt,
                    entries=len(entries),
                )
                return StockMutationResponse(
                    product=ProductResponse(**result.product),
                    entries=entries,
                )

            logger.warning(
                "stock_transaction_conflict",
                operation=operation,
                product_id=product_id,
                attempt=attempt,
            )

        logger.error(
            "stock_transaction_retries_exhausted",
            operation=operation,
            product_id=product_id,
            attempts=self.max_attempts,
        )
        raise ConcurrencyConflictError(product_id, self.max_attempts)


# ===================
# SINGLETON
# ===================

_stock_mutation_service: Optional[StockMutationService] = None


def get_stock_mutation_service() -> StockMutationService:
    """Get or create StockMutationService instance."""
    global _stock_mutation_service
    if _stock_mutation_service is None:
        _stock_mutation_service = StockMutationService()
    return _stock_mutation_service
