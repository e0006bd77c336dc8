"""
Report Service - read-side projections over products and the ledger.

The projection functions are pure: they take rows or models, never write,
and treat missing data (no cost, no timestamp, unknown type) as zero or
absent rather than raising, since reports are advisory.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from models.ledger import LedgerEntry, MovementType, OUTBOUND_TYPES
from models.reports import (
    AbcClass,
    AbcLine,
    AbcReport,
    DeadStockLine,
    DeadStockReport,
    LowStockLine,
    LowStockReport,
    ValuationLine,
    ValuationReport,
)
from services.product_aggregate import is_low_stock, total_quantity
from services.stock_store import StockStore, get_stock_store

logger = structlog.get_logger(__name__)


# ===================
# HELPERS
# ===================

def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _cost(product: Any) -> Decimal:
    try:
        return Decimal(str(_get(product, "unit_cost") or 0))
    except InvalidOperation:
        return Decimal("0")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def to_entries(rows: Iterable[Any]) -> list[LedgerEntry]:
    """Parse ledger rows, skipping ones that can't be normalized."""
    entries = []
    for row in rows:
        if isinstance(row, LedgerEntry):
            entries.append(row)
            continue
        try:
            entries.append(LedgerEntry(**row))
        except (PydanticValidationError, TypeError, ValueError) as e:
            logger.warning("ledger_row_skipped", row_id=_get(row, "id"), error=str(e))
    return entries


# ===================
# PROJECTIONS
# ===================

def stock_valuation(products: Iterable[Any]) -> ValuationReport:
    """Quantity on hand times unit cost, per product and overall."""
    lines = []
    for product in products:
        quantity = total_quantity(product)
        cost = _cost(product)
        lines.append(
            ValuationLine(
                product_id=str(_get(product, "id")),
                name=_get(product, "name") or "",
                total_quantity=quantity,
                unit_cost=cost,
                total_value=cost * quantity,
            )
        )
    return ValuationReport(
        lines=lines,
        grand_total=sum((line.total_value for line in lines), Decimal("0")),
    )


def abc_classification(
    products: Iterable[Any],
    entries: Iterable[LedgerEntry],
    as_of: datetime,
    window_days: int,
    class_a_threshold: float = 80.0,
    class_b_threshold: float = 95.0,
) -> AbcReport:
    """
    Rank products by outbound consumption value over the trailing window.

    Class A while the cumulative share stays <= class_a_threshold percent,
    B while <= class_b_threshold, C after that. Products with no
    consumption are left out. The sort is stable, so equal values keep
    input order.
    """
    period_start = _aware(as_of) - timedelta(days=window_days)
    consumed: dict[str, int] = {}
    for entry in entries:
        if entry.movement_type not in OUTBOUND_TYPES or entry.created_at is None:
            continue
        if _aware(entry.created_at) < period_start:
            continue
        consumed[entry.product_id] = consumed.get(entry.product_id, 0) + entry.quantity

    rows = []
    for product in products:
        product_id = str(_get(product, "id"))
        quantity = consumed.get(product_id, 0)
        value = _cost(product) * quantity
        if value > 0:
            rows.append((product_id, _get(product, "name") or "", quantity, value))

    total = sum((row[3] for row in rows), Decimal("0"))
    report = AbcReport(
        window_days=window_days,
        period_start=period_start,
        lines=[],
        total_consumption_value=total,
    )
    if total == 0:
        return report

    rows.sort(key=lambda row: row[3], reverse=True)
    cumulative = Decimal("0")
    for product_id, name, quantity, value in rows:
        cumulative += value
        share = float(cumulative / total * 100)
        if share <= class_a_threshold:
            classification = AbcClass.A
        elif share <= class_b_threshold:
            classification = AbcClass.B
        else:
            classification = AbcClass.C
        report.lines.append(
            AbcLine(
                product_id=product_id,
                name=name,
                quantity_consumed=quantity,
                consumption_value=value,
                cumulative_percentage=round(share, 4),
                classification=classification,
            )
        )
    return report


def dead_stock(
    products: Iterable[Any],
    entries: Iterable[LedgerEntry],
    as_of: datetime,
    window_days: int,
) -> DeadStockReport:
    """
    Products holding stock with no outbound movement since the cutoff.

    A product that was never issued at all is dead stock too.
    """
    cutoff = _aware(as_of) - timedelta(days=window_days)
    last_outbound: dict[str, datetime] = {}
    for entry in entries:
        if entry.movement_type not in OUTBOUND_TYPES or entry.created_at is None:
            continue
        when = _aware(entry.created_at)
        if entry.product_id not in last_outbound or when > last_outbound[entry.product_id]:
            last_outbound[entry.product_id] = when

    lines = []
    for product in products:
        quantity = total_quantity(product)
        if quantity <= 0:
            continue
        product_id = str(_get(product, "id"))
        last = last_outbound.get(product_id)
        if last is not None and last >= cutoff:
            continue
        cost = _cost(product)
        lines.append(
            DeadStockLine(
                product_id=product_id,
                name=_get(product, "name") or "",
                total_quantity=quantity,
                unit_cost=cost,
                dead_value=cost * quantity,
                last_outbound_at=last,
            )
        )
    return DeadStockReport(
        window_days=window_days,
        cutoff=cutoff,
        lines=lines,
        total_dead_value=sum((line.dead_value for line in lines), Decimal("0")),
    )


def low_stock(products: Iterable[Any]) -> LowStockReport:
    """Products at or below their minimum stock."""
    lines = [
        LowStockLine(
            product_id=str(_get(product, "id")),
            name=_get(product, "name") or "",
            total_quantity=total_quantity(product),
            min_stock=int(_get(product, "min_stock") or 0),
        )
        for product in products
        if is_low_stock(product)
    ]
    return LowStockReport(lines=lines, total=len(lines))


def audit_trail(
    entries: Iterable[LedgerEntry],
    product_id: Optional[str] = None,
    location_id: Optional[str] = None,
    user_id: Optional[str] = None,
    movement_type: Optional[MovementType] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> list[LedgerEntry]:
    """Filter ledger entries, newest first; undated entries sort last."""
    result = []
    for entry in entries:
        if product_id and entry.product_id != product_id:
            continue
        if location_id and entry.location_id != location_id:
            continue
        if user_id and entry.user_id != user_id:
            continue
        if movement_type and entry.movement_type != movement_type:
            continue
        if since or until:
            if entry.created_at is None:
                continue
            when = _aware(entry.created_at)
            if since and when < _aware(since):
                continue
            if until and when > _aware(until):
                continue
        result.append(entry)

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    result.sort(
        key=lambda e: _aware(e.created_at) if e.created_at else epoch,
        reverse=True,
    )
    return result


def replay_quantity(
    entries: Iterable[LedgerEntry],
    product_id: str,
    location_id: str,
) -> int:
    """Rebuild a location's quantity by summing its ledger deltas from 0."""
    return sum(
        entry.quantity_delta
        for entry in entries
        if entry.product_id == product_id and entry.location_id == location_id
    )


# ===================
# SERVICE
# ===================

class ReportService:
    """
    Report business logic.

    Loads products and ledger entries from the store and runs the
    projections above.
    """

    def __init__(self, store: Optional[StockStore] = None):
        self.store = store or get_stock_store()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def valuation(self) -> ValuationReport:
        products = self.store.list_products()
        report = stock_valuation(products)
        logger.info("valuation_report_generated", products=len(report.lines))
        return report

    def abc(self, window_days: Optional[int] = None) -> AbcReport:
        window_days = window_days or settings.abc_window_days
        as_of = self._now()
        products = self.store.list_products()
        entries = to_entries(
            self.store.get_ledger_entries(
                movement_types=[t.value for t in OUTBOUND_TYPES],
                since=as_of - timedelta(days=window_days),
            )
        )
        report = abc_classification(
            products,
            entries,
            as_of,
            window_days,
            class_a_threshold=settings.abc_class_a_threshold,
            class_b_threshold=settings.abc_class_b_threshold,
        )
        logger.info(
            "abc_report_generated",
            window_days=window_days,
            products=len(report.lines),
        )
        return report

    def dead_stock(self, window_days: Optional[int] = None) -> DeadStockReport:
        window_days = window_days or settings.dead_stock_window_days
        products = self.store.list_products()
        entries = to_entries(
            self.store.get_ledger_entries(
                movement_types=[t.value for t in OUTBOUND_TYPES],
            )
        )
        report = dead_stock(products, entries, self._now(), window_days)
        logger.info(
            "dead_stock_report_generated",
            window_days=window_days,
            products=len(report.lines),
        )
        return report

    def low_stock(self) -> LowStockReport:
        return low_stock(self.store.list_products())

    def audit_trail(
        self,
        product_id: Optional[str] = None,
        location_id: Optional[str] = None,
        user_id: Optional[str] = None,
        movement_type: Optional[MovementType] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 200,
    ) -> list[LedgerEntry]:
        rows = self.store.get_ledger_entries(
            product_id=product_id,
            location_id=location_id,
            movement_types=[movement_type.value] if movement_type else None,
            user_id=user_id,
            since=since,
            until=until,
            limit=limit,
        )
        return audit_trail(
            to_entries(rows),
            product_id=product_id,
            location_id=location_id,
            user_id=user_id,
            movement_type=movement_type,
            since=since,
            until=until,
        )

    def ledger_consistency(self, product_id: str) -> dict[str, dict[str, int]]:
        """
        Compare each location's stored quantity with its ledger replay.

        Only meaningful when the ledger holds the product's full history.
        """
        product = self.store.get_product(product_id) or {}
        entries = to_entries(self.store.get_ledger_entries(product_id=product_id))
        locations = dict(product.get("locations") or {})
        for entry in entries:
            if entry.location_id:
                locations.setdefault(entry.location_id, 0)
        return {
            location_id: {
                "stored": int(stored or 0),
                "replayed": replay_quantity(entries, product_id, location_id),
            }
            for location_id, stored in locations.items()
        }


# ===================
# SINGLETON
# ===================

_report_service: Optional[ReportService] = None


def get_report_service() -> ReportService:
    """Get or create ReportService instance."""
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service
