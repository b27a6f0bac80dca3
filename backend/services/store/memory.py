"""In-memory data store, used by tests and local demos."""

import threading
from itertools import count
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.utils import timezone

from services.exceptions import StoreError
from .base import COLLECTIONS, DataStore, Row


def _matches(row: Row, filters: Row) -> bool:
    for key, expected in filters.items():
        field, _, lookup = key.partition("__")
        value = row.get(field)
        if lookup == "":
            if value != expected:
                return False
        elif lookup == "in":
            if value not in expected:
                return False
        elif lookup == "isnull":
            if (value is None) != bool(expected):
                return False
        else:
            raise StoreError(f"Unsupported lookup: {key}")
    return True


def _sort(rows: List[Row], order_by: Sequence[str]) -> List[Row]:
    # apply keys right-to-left so the first key wins (stable sort)
    for key in reversed(order_by):
        field = key.lstrip("-")
        rows.sort(
            key=lambda row: (row.get(field) is None, row.get(field)),
            reverse=key.startswith("-"),
        )
    return rows


class InMemoryDataStore(DataStore):
    """
    Thread-safe dict-backed store.

    Rows are copied on the way in and out so callers never share state with
    the store, the same as with a remote database.
    """

    def __init__(self, initial: Optional[Dict[str, Iterable[Row]]] = None):
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Row]] = {name: [] for name in COLLECTIONS}
        self._ids = {name: count(1) for name in COLLECTIONS}
        for collection, rows in (initial or {}).items():
            for row in rows:
                self.insert(collection, row)

    def _table(self, collection: str) -> List[Row]:
        try:
            return self._tables[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}")

    def insert(self, collection: str, values: Row) -> Row:
        with self._lock:
            return self._insert_locked(collection, self._table(collection), values)

    def _insert_locked(self, collection: str, table: List[Row], values: Row) -> Row:
        row: Dict[str, Any] = dict(values)
        if row.get("id") is None:
            row["id"] = next(self._ids[collection])
        row.setdefault("created_at", timezone.now())
        table.append(row)
        return dict(row)

    def update(self, collection: str, filters: Row, values: Row) -> List[Row]:
        with self._lock:
            updated = []
            for row in self._table(collection):
                if _matches(row, filters):
                    row.update(values)
                    updated.append(dict(row))
            return updated

    def select(
        self,
        collection: str,
        filters: Optional[Row] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        with self._lock:
            rows = [dict(row) for row in self._table(collection) if _matches(row, filters or {})]
        if order_by:
            rows = _sort(rows, order_by)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def upsert(self, collection: str, values: Row, on_conflict: Iterable[str]) -> Row:
        lookup = {key: values[key] for key in on_conflict}
        with self._lock:
            table = self._table(collection)
            for row in table:
                if _matches(row, lookup):
                    row.update(values)
                    return dict(row)
            return self._insert_locked(collection, table, values)
