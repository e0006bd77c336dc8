"""
Count Service - physical counting and reconciliation.

A count session moves in_progress -> completed -> applied. Expected
quantities are captured when the session starts; applying a completed
session replays every variance as a manual adjustment, and all product
writes, ledger entries and the flip to `applied` commit as one batch.
A session that is already applied can never be applied again.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from config import settings
from models.count import (
    COUNT_ADJUSTMENT_REASON,
    CountApplyResponse,
    CountLine,
    CountSession,
    CountStatus,
    CountVarianceReport,
)
from models.ledger import ActingUser, LedgerEntry, MovementType
from models.product import ProductResponse
from services.product_aggregate import location_quantities, main_location, total_quantity
from services.stock_mutation_service import build_ledger_entry
from services.stock_store import ProductWrite, StockStore, get_stock_store
from exceptions import (
    AlreadyAppliedError,
    ConcurrencyConflictError,
    CountLineNotFoundError,
    CountSessionNotFoundError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    LocationNotFoundError,
    ProductNotFoundError,
    UncountedLinesError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _lines_row(lines: list[CountLine]) -> list[dict]:
    return [line.model_dump(mode="json", exclude={"difference"}) for line in lines]


class CountService:
    """
    Count reconciliation business logic.

    Core methods:
    - start_count: Snapshot expected quantities
    - record_counted_quantity: Operator enters a counted value
    - finalize: Lock the lines (in_progress -> completed)
    - apply_adjustments: Replay variances into stock (completed -> applied)
    - variance_report: Per-line differences and totals
    """

    def __init__(
        self,
        store: Optional[StockStore] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store or get_stock_store()
        self.max_attempts = max_attempts or settings.stock_transaction_max_attempts

    # ===================
    # READ OPERATIONS
    # ===================

    def get_session(self, session_id: str) -> CountSession:
        """
        Get a count session.

        Raises:
            CountSessionNotFoundError: If the session doesn't exist
        """
        row = self.store.get_count_session(session_id)
        if row is None:
            raise CountSessionNotFoundError(session_id)
        return CountSession(**row)

    def list_sessions(
        self,
        status: Optional[CountStatus] = None,
        limit: int = 50,
    ) -> list[CountSession]:
        """List count sessions, newest first."""
        rows = self.store.list_count_sessions(
            status=status.value if status else None,
            limit=limit,
        )
        return [CountSession(**row) for row in rows]

    def variance_report(self, session_id: str) -> CountVarianceReport:
        """Summarize expected vs counted quantities of a session."""
        session = self.get_session(session_id)
        counted = [line for line in session.lines if line.counted_quantity is not None]
        matched = sum(1 for line in counted if line.difference == 0)

        return CountVarianceReport(
            session_id=session.id,
            status=session.status,
            lines=session.lines,
            products_counted=len(counted),
            products_matched=matched,
            products_discrepant=len(counted) - matched,
            total_expected=sum(line.expected_quantity for line in session.lines),
            total_counted=sum(line.counted_quantity for line in counted),
            total_difference=sum(line.difference for line in counted),
        )

    # ===================
    # SESSION LIFECYCLE
    # ===================

    def start_count(
        self,
        acting_user: ActingUser,
        location_id: Optional[str] = None,
        product_ids: Optional[list[str]] = None,
    ) -> CountSession:
        """
        Start a count session.

        Expected quantity per line is the product total, or the quantity at
        location_id for a location-scoped count, as of now.

        Raises:
            LocationNotFoundError: Unknown location_id
            ProductNotFoundError: An id in product_ids doesn't exist
        """
        if location_id is not None and self.store.get_location(location_id) is None:
            raise LocationNotFoundError(location_id)

        if product_ids:
            rows = self.store.get_products(product_ids)
            found = {row["id"] for row in rows}
            for product_id in product_ids:
                if product_id not in found:
                    raise ProductNotFoundError(product_id)
        else:
            rows = self.store.list_products()

        lines = []
        for row in rows:
            if location_id is None:
                expected = total_quantity(row)
            else:
                expected = location_quantities(row).get(location_id, 0)
            lines.append(
                CountLine(
                    product_id=row["id"],
                    product_name=row.get("name"),
                    expected_quantity=expected,
                )
            )

        session_row = self.store.insert_count_session({
            "status": CountStatus.IN_PROGRESS.value,
            "location_id": location_id,
            "user_id": acting_user.user_id,
            "user_name": acting_user.label,
            "lines": _lines_row(lines),
            "version": 0,
            "created_at": _now_iso(),
        })
        session = CountSession(**session_row)

        logger.info(
            "count_session_started",
            session_id=session.id,
            location_id=location_id,
            lines=len(lines),
            user_id=acting_user.user_id,
        )
        return session

    def record_counted_quantity(
        self,
        session_id: str,
        product_id: str,
        quantity: int,
    ) -> CountSession:
        """
        Record the counted quantity for one line.

        Raises:
            InvalidQuantityError: quantity < 0
            InvalidStatusTransitionError: Session is no longer in progress
            CountLineNotFoundError: Product not part of the session
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantityError(quantity, allow_zero=True)

        def mutate(session: CountSession) -> dict:
            if session.status != CountStatus.IN_PROGRESS:
                raise InvalidStatusTransitionError(session.status.value, "counting")
            line = session.line_for(product_id)
            if line is None:
                raise CountLineNotFoundError(session_id, product_id)
            lines = [
                l.model_copy(update={"counted_quantity": quantity})
                if l.product_id == product_id else l
                for l in session.lines
            ]
            return {"lines": _lines_row(lines)}

        session = self._update_session(session_id, mutate)
        logger.debug(
            "count_quantity_recorded",
            session_id=session_id,
            product_id=product_id,
            quantity=quantity,
        )
        return session

    def finalize(
        self,
        session_id: str,
        confirm_missing_as_zero: bool = False,
    ) -> CountSession:
        """
        Lock the session's lines (in_progress -> completed).

        Lines never counted become 0, but only with explicit confirmation.

        Raises:
            InvalidStatusTransitionError: Session is not in progress
            UncountedLinesError: Blank lines and no confirmation
        """
        def mutate(session: CountSession) -> dict:
            if session.status != CountStatus.IN_PROGRESS:
                raise InvalidStatusTransitionError(
                    session.status.value, CountStatus.COMPLETED.value
                )
            missing = session.uncounted_product_ids
            if missing and not confirm_missing_as_zero:
                raise UncountedLinesError(missing)
            lines = [
                l.model_copy(update={"counted_quantity": 0})
                if l.counted_quantity is None else l
                for l in session.lines
            ]
            return {
                "lines": _lines_row(lines),
                "status": CountStatus.COMPLETED.value,
                "completed_at": _now_iso(),
            }

        session = self._update_session(session_id, mutate)
        logger.info(
            "count_session_finalized",
            session_id=session_id,
            lines=len(session.lines),
        )
        return session

    def apply_adjustments(
        self,
        session_id: str,
        acting_user: ActingUser,
    ) -> CountApplyResponse:
        """
        Replay every variance of a completed session into stock.

        All adjustments and the flip to `applied` commit together; on a
        concurrent change anywhere in the batch the whole batch is recomputed.

        Raises:
            AlreadyAppliedError: Session was applied before
            InvalidStatusTransitionError: Session not finalized yet
            ProductNotFoundError: A counted product was deleted meanwhile
        """
        for attempt in range(1, self.max_attempts + 1):
            session = self.get_session(session_id)
            if session.status == CountStatus.APPLIED:
                raise AlreadyAppliedError(session_id)
            if session.status != CountStatus.COMPLETED:
                raise InvalidStatusTransitionError(
                    session.status.value, CountStatus.APPLIED.value
                )

            variances = [
                line for line in session.lines
                if line.counted_quantity != line.expected_quantity
            ]
            rows = self.store.get_products([line.product_id for line in variances])
            products = {row["id"]: ProductResponse(**row) for row in rows}
            location_names = self.store.get_location_names() if variances else {}

            writes: list[ProductWrite] = []
            entries: list[LedgerEntry] = []
            for line in variances:
                product = products.get(line.product_id)
                if product is None:
                    raise ProductNotFoundError(line.product_id)
                new_locations, line_entries = self._plan_line(
                    session, line, product, location_names, acting_user
                )
                if line_entries:
                    writes.append(
                        ProductWrite(
                            product_id=product.id,
                            expected_version=product.version,
                            locations=new_locations,
                        )
                    )
                    entries.extend(line_entries)

            result = self.store.commit_count_application(
                session_id=session.id,
                expected_session_version=session.version,
                writes=writes,
                entries=[entry.to_row() for entry in entries],
                applied_by=acting_user.label,
            )
            if result is not None:
                logger.info(
                    "count_session_applied",
                    session_id=session_id,
                    products_adjusted=len(writes),
                    entries=len(result.entries),
                    attempt=attempt,
                )
                return CountApplyResponse(
                    session=self.get_session(session_id),
                    entries=[LedgerEntry(**row) for row in result.entries],
                )

            logger.warning(
                "count_apply_conflict",
                session_id=session_id,
                attempt=attempt,
            )

        logger.error(
            "count_apply_retries_exhausted",
            session_id=session_id,
            attempts=self.max_attempts,
        )
        raise ConcurrencyConflictError(session_id, self.max_attempts)

    # ===================
    # INTERNALS
    # ===================

    def _plan_line(
        self,
        session: CountSession,
        line: CountLine,
        product: ProductResponse,
        location_names: dict[str, str],
        acting_user: ActingUser,
    ) -> tuple[dict[str, int], list[LedgerEntry]]:
        """
        New locations map and adjustment entries bringing a product to its
        counted quantity.

        Location-scoped sessions set that location. Product-wide sessions
        move the total: surplus goes to the main location, shortfall is
        taken from the fullest locations first.
        """
        locations = dict(product.locations)
        counted = line.counted_quantity or 0

        if session.location_id is not None:
            targets = {session.location_id: counted}
        else:
            difference = counted - total_quantity(product)
            targets = {}
            if difference > 0:
                target = main_location(product) or next(iter(locations), None)
                if target is None:
                    raise ValidationError(
                        f"{product.name} has no location to receive counted stock; "
                        "use a location-scoped count",
                        code="COUNT_NO_TARGET_LOCATION",
                        details={"product_id": product.id},
                    )
                targets[target] = locations[target] + difference
            elif difference < 0:
                shortfall = -difference
                for location_id, qty in sorted(
                    locations.items(), key=lambda item: item[1], reverse=True
                ):
                    if shortfall == 0:
                        break
                    taken = min(qty, shortfall)
                    if taken:
                        targets[location_id] = qty - taken
                        shortfall -= taken

        entries = []
        for location_id, new_quantity in targets.items():
            before = locations.get(location_id, 0)
            delta = new_quantity - before
            if delta == 0:
                continue
            locations[location_id] = new_quantity
            entries.append(
                build_ledger_entry(
                    product,
                    location_id,
                    location_names.get(location_id),
                    MovementType.MANUAL_ADJUSTMENT,
                    before,
                    delta,
                    acting_user,
                    COUNT_ADJUSTMENT_REASON,
                    count_session_id=session.id,
                )
            )
        return locations, entries

    def _update_session(
        self,
        session_id: str,
        mutate: Callable[[CountSession], dict],
    ) -> CountSession:
        """Version-checked read-modify-write of a session document."""
        for attempt in range(1, self.max_attempts + 1):
            session = self.get_session(session_id)
            fields = mutate(session)
            row = self.store.update_count_session(session_id, session.version, fields)
            if row is not None:
                return CountSession(**row)
            logger.warning(
                "count_session_update_conflict",
                session_id=session_id,
                attempt=attempt,
            )
        raise ConcurrencyConflictError(session_id, self.max_attempts)


# ===================
# SINGLETON
# ===================

_count_service: Optional[CountService] = None


def get_count_service() -> CountService:
    """Get or create CountService instance."""
    global _count_service
    if _count_service is None:
        _count_service = CountService()
    return _count_service
