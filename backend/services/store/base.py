"""
Data store interface used by the ride services.

A store exposes per-collection CRUD over plain ``dict`` rows. Collections:
``rides``, ``drivers``, ``passengers`` and ``pricing_config``.

Filters are keyword dicts in Django lookup syntax, limited to exact matches,
``<field>__in`` and ``<field>__isnull``. Ordering takes field names with an
optional ``-`` prefix for descending order.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

Row = Dict[str, Any]

COLLECTIONS = ("rides", "drivers", "passengers", "pricing_config")


class DataStore(ABC):
    """Minimal query capability the ride core needs from its backing store."""

    @abstractmethod
    def insert(self, collection: str, values: Row) -> Row:
        """Insert one row and return it with store-assigned fields (id, created_at)."""

    @abstractmethod
    def update(self, collection: str, filters: Row, values: Row) -> List[Row]:
        """Apply ``values`` to every row matching ``filters``; return the updated rows."""

    @abstractmethod
    def select(
        self,
        collection: str,
        filters: Optional[Row] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Return rows matching ``filters``."""

    @abstractmethod
    def upsert(self, collection: str, values: Row, on_conflict: Iterable[str]) -> Row:
        """Insert ``values`` or update the row whose ``on_conflict`` fields match."""

    def select_one(self, collection: str, filters: Row) -> Optional[Row]:
        rows = self.select(collection, filters, limit=1)
        return rows[0] if rows else None
