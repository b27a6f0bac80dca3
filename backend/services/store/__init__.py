"""
Data store access for the ride services.

The ride core never imports models directly for its reads and writes; it talks
to a ``DataStore`` that is injected into each service. ``get_default_store()``
returns the process-wide instance configured by ``settings.RIDE_DATA_STORE``.
"""

from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from .base import COLLECTIONS, DataStore, Row
from .django_store import DjangoDataStore
from .memory import InMemoryDataStore

DEFAULT_STORE_CLASS = "services.store.DjangoDataStore"

_default_store: Optional[DataStore] = None


def get_default_store() -> DataStore:
    """Get singleton DataStore instance."""
    global _default_store
    if _default_store is None:
        store_class = import_string(getattr(settings, "RIDE_DATA_STORE", DEFAULT_STORE_CLASS))
        _default_store = store_class()
    return _default_store


__all__ = [
    "COLLECTIONS",
    "DataStore",
    "Row",
    "DjangoDataStore",
    "InMemoryDataStore",
    "get_default_store",
]
