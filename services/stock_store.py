"""
Stock persistence substrate.

StockStore is the narrow interface the mutation and count engines depend
on: plain reads, plus two atomic commit primitives that compare-and-swap
product versions and insert ledger rows in the same database transaction.
A commit against a stale version writes nothing and reports a conflict so
the caller can re-read and retry.

SupabaseStockStore implements the commits as Postgres functions called over
RPC (see migrations/001_stock_control.sql).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

import structlog
from supabase import Client

from config import get_supabase_client, settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


def fetch_all(build_query: Callable, page_size: int, limit: Optional[int] = None) -> list[dict]:
    """
    Read every row of a query, one .range() page at a time.

    PostgREST silently truncates a plain select at its max-rows setting, so
    whole-table reads page until a short page comes back. build_query must
    return a fresh, deterministically ordered query on each call.
    """
    rows: list[dict] = []
    offset = 0
    while True:
        size = page_size if not limit else min(page_size, limit - len(rows))
        result = build_query().range(offset, offset + size - 1).execute()
        page = result.data or []
        rows.extend(page)
        if len(page) < size or (limit and len(rows) >= limit):
            return rows
        offset += size


@dataclass
class ProductWrite:
    """New locations map for a product, guarded by the version it was read at."""

    product_id: str
    expected_version: int
    locations: dict[str, int]


@dataclass
class CommitResult:
    """Rows as committed: the updated product(s) and inserted ledger entries."""

    products: list[dict] = field(default_factory=list)
    entries: list[dict] = field(default_factory=list)

    @property
    def product(self) -> Optional[dict]:
        return self.products[0] if self.products else None


class StockStore(ABC):
    """Persistence operations used by the stock engines."""

    # ===================
    # PRODUCTS
    # ===================

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[dict]:
        """Current product row (including version), or None."""

    @abstractmethod
    def get_products(self, product_ids: list[str]) -> list[dict]:
        """Rows for the given ids; missing ids are simply absent."""

    @abstractmethod
    def list_products(self) -> list[dict]:
        """All product rows."""

    # ===================
    # REFERENCE DATA
    # ===================

    @abstractmethod
    def get_location(self, location_id: str) -> Optional[dict]:
        """Location row (id, name), or None."""

    @abstractmethod
    def get_location_names(self) -> dict[str, str]:
        """Map of every location id to its name."""

    # ===================
    # ATOMIC COMMITS
    # ===================

    @abstractmethod
    def create_product(self, row: dict, entries: list[dict]) -> CommitResult:
        """
        Atomically insert a new product row and its opening ledger entries.

        Either both are written or neither is.
        """

    @abstractmethod
    def commit_mutation(
        self,
        write: ProductWrite,
        entries: list[dict],
    ) -> Optional[CommitResult]:
        """
        Atomically update one product's locations and insert ledger entries.

        Returns None, having written nothing, if the product's version no
        longer matches write.expected_version.
        """

    @abstractmethod
    def commit_count_application(
        self,
        session_id: str,
        expected_session_version: int,
        writes: list[ProductWrite],
        entries: list[dict],
        applied_by: str,
    ) -> Optional[CommitResult]:
        """
        Atomically apply a count: every product write, every ledger entry and
        the session's flip to `applied`.

        Returns None, having written nothing, if the session or any product
        changed since it was read.
        """

    # ===================
    # LEDGER
    # ===================

    @abstractmethod
    def get_ledger_entries(
        self,
        product_id: Optional[str] = None,
        location_id: Optional[str] = None,
        movement_types: Optional[list[str]] = None,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Ledger rows matching the filters, newest first."""

    # ===================
    # COUNT SESSIONS
    # ===================

    @abstractmethod
    def insert_count_session(self, row: dict) -> dict:
        """Insert a new session; returns it with id and version assigned."""

    @abstractmethod
    def get_count_session(self, session_id: str) -> Optional[dict]:
        """Session row, or None."""

    @abstractmethod
    def list_count_sessions(self, status: Optional[str] = None, limit: int = 50) -> list[dict]:
        """Sessions, newest first."""

    @abstractmethod
    def update_count_session(
        self,
        session_id: str,
        expected_version: int,
        fields: dict,
    ) -> Optional[dict]:
        """Version-checked update; None on conflict."""


class SupabaseStockStore(StockStore):
    """StockStore over Supabase tables and RPC functions."""

    def __init__(self, client: Optional[Client] = None, page_size: Optional[int] = None):
        self.db = client or get_supabase_client()
        self.page_size = page_size or settings.supabase_page_size

    def _first(self, result) -> Optional[dict]:
        return result.data[0] if result.data else None

    # ===================
    # PRODUCTS
    # ===================

    def get_product(self, product_id: str) -> Optional[dict]:
        try:
            result = (
                self.db.table("products")
                .select("*")
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
            return self._first(result)
        except Exception as e:
            logger.error("get_product_failed", product_id=product_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_products(self, product_ids: list[str]) -> list[dict]:
        rows: list[dict] = []
        try:
            # Chunked so neither the id filter nor the response outgrows a page
            for start in range(0, len(product_ids), self.page_size):
                chunk = product_ids[start:start + self.page_size]
                result = (
                    self.db.table("products")
                    .select("*")
                    .in_("id", chunk)
                    .execute()
                )
                rows.extend(result.data or [])
            return rows
        except Exception as e:
            logger.error("get_products_failed", count=len(product_ids), error=str(e))
            raise DatabaseError("select", str(e))

    def list_products(self) -> list[dict]:
        try:
            return fetch_all(
                lambda: self.db.table("products").select("*").order("name").order("id"),
                self.page_size,
            )
        except Exception as e:
            logger.error("list_products_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # REFERENCE DATA
    # ===================

    def get_location(self, location_id: str) -> Optional[dict]:
        try:
            result = (
                self.db.table("locations")
                .select("id, name")
                .eq("id", location_id)
                .limit(1)
                .execute()
            )
            return self._first(result)
        except Exception as e:
            logger.error("get_location_failed", location_id=location_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_location_names(self) -> dict[str, str]:
        try:
            result = self.db.table("locations").select("id, name").execute()
            return {row["id"]: row["name"] for row in result.data or []}
        except Exception as e:
            logger.error("get_location_names_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # ATOMIC COMMITS
    # ===================

    def create_product(self, row: dict, entries: list[dict]) -> CommitResult:
        try:
            result = self.db.rpc(
                "create_product_with_stock",
                {"p_product": row, "p_entries": entries},
            ).execute()
        except Exception as e:
            logger.error("create_product_with_stock_failed", name=row.get("name"), error=str(e))
            raise DatabaseError("create_product_with_stock", str(e))

        payload = result.data or {}
        return CommitResult(
            products=[payload["product"]],
            entries=payload.get("entries") or [],
        )

    def commit_mutation(
        self,
        write: ProductWrite,
        entries: list[dict],
    ) -> Optional[CommitResult]:
        try:
            result = self.db.rpc(
                "commit_stock_mutation",
                {
                    "p_product_id": write.product_id,
                    "p_expected_version": write.expected_version,
                    "p_locations": write.locations,
                    "p_entries": entries,
                },
            ).execute()
        except Exception as e:
            logger.error(
                "commit_stock_mutation_failed",
                product_id=write.product_id,
                error=str(e),
            )
            raise DatabaseError("commit_stock_mutation", str(e))

        payload = result.data
        if not payload:
            return None
        return CommitResult(
            products=[payload["product"]],
            entries=payload.get("entries") or [],
        )

    def commit_count_application(
        self,
        session_id: str,
        expected_session_version: int,
        writes: list[ProductWrite],
        entries: list[dict],
        applied_by: str,
    ) -> Optional[CommitResult]:
        try:
            result = self.db.rpc(
                "apply_count_session",
                {
                    "p_session_id": session_id,
                    "p_expected_version": expected_session_version,
                    "p_writes": [
                        {
                            "product_id": w.product_id,
                            "expected_version": w.expected_version,
                            "locations": w.locations,
                        }
                        for w in writes
                    ],
                    "p_entries": entries,
                    "p_applied_by": applied_by,
                },
            ).execute()
        except Exception as e:
            logger.error(
                "apply_count_session_failed",
                session_id=session_id,
                error=str(e),
            )
            raise DatabaseError("apply_count_session", str(e))

        payload = result.data
        if not payload:
            return None
        return CommitResult(
            products=payload.get("products") or [],
            entries=payload.get("entries") or [],
        )

    # ===================
    # LEDGER
    # ===================

    def get_ledger_entries(
        self,
        product_id: Optional[str] = None,
        location_id: Optional[str] = None,
        movement_types: Optional[list[str]] = None,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        def build_query():
            query = (
                self.db.table("stock_ledger")
                .select("*")
                .order("created_at", desc=True)
                .order("id")
            )
            if product_id:
                query = query.eq("product_id", product_id)
            if location_id:
                query = query.eq("location_id", location_id)
            if movement_types:
                query = query.in_("movement_type", movement_types)
            if user_id:
                query = query.eq("user_id", user_id)
            if since:
                query = query.gte("created_at", since.isoformat())
            if until:
                query = query.lte("created_at", until.isoformat())
            return query

        try:
            return fetch_all(build_query, self.page_size, limit)
        except Exception as e:
            logger.error("get_ledger_entries_failed", product_id=product_id, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # COUNT SESSIONS
    # ===================

    def insert_count_session(self, row: dict) -> dict:
        try:
            result = self.db.table("count_sessions").insert(row).execute()
            return result.data[0]
        except Exception as e:
            logger.error("insert_count_session_failed", error=str(e))
            raise DatabaseError("insert", str(e))

    def get_count_session(self, session_id: str) -> Optional[dict]:
        try:
            result = (
                self.db.table("count_sessions")
                .select("*")
                .eq("id", session_id)
                .limit(1)
                .execute()
            )
            return self._first(result)
        except Exception as e:
            logger.error("get_count_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("select", str(e))

    def list_count_sessions(self, status: Optional[str] = None, limit: int = 50) -> list[dict]:
        try:
            query = (
                self.db.table("count_sessions")
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
            )
            if status:
                query = query.eq("status", status)
            result = query.execute()
            return result.data or []
        except Exception as e:
            logger.error("list_count_sessions_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def update_count_session(
        self,
        session_id: str,
        expected_version: int,
        fields: dict,
    ) -> Optional[dict]:
        try:
            result = (
                self.db.table("count_sessions")
                .update({**fields, "version": expected_version + 1})
                .eq("id", session_id)
                .eq("version", expected_version)
                .execute()
            )
            return self._first(result)
        except Exception as e:
            logger.error("update_count_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("update", str(e))


@lru_cache()
def get_stock_store() -> StockStore:
    """
    Get cached stock store.

    Call get_stock_store.cache_clear() after reset_connection().
    """
    return SupabaseStockStore()
