"""Django ORM backed data store."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from django.apps import apps
from django.db import DatabaseError, transaction

from services.exceptions import StoreError
from .base import DataStore, Row

logger = logging.getLogger(__name__)


# collection name -> (app_label, model_name)
COLLECTION_MODELS: Dict[str, tuple] = {
    "rides": ("rides", "Ride"),
    "drivers": ("drivers", "Driver"),
    "passengers": ("passengers", "Passenger"),
    "pricing_config": ("rides", "PricingConfig"),
}


class DjangoDataStore(DataStore):
    """
    Store implementation over the project's Django models.

    Rows are returned as ``QuerySet.values()`` dicts, so foreign keys appear
    under their column names (``passenger_id``, ``driver_id``).
    Every ``DatabaseError`` is re-raised as ``StoreError``.
    """

    def _model(self, collection: str):
        try:
            app_label, model_name = COLLECTION_MODELS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}")
        return apps.get_model(app_label, model_name)

    def _row(self, model, pk) -> Row:
        return model.objects.filter(pk=pk).values().get()

    def insert(self, collection: str, values: Row) -> Row:
        model = self._model(collection)
        try:
            obj = model.objects.create(**values)
            return self._row(model, obj.pk)
        except DatabaseError as exc:
            logger.error("Insert into %s failed: %s", collection, exc)
            raise StoreError(f"Failed to insert into {collection}") from exc

    def update(self, collection: str, filters: Row, values: Row) -> List[Row]:
        model = self._model(collection)
        try:
            with transaction.atomic():
                qs = model.objects.select_for_update().filter(**filters)
                pks = list(qs.values_list("pk", flat=True))
                if not pks:
                    return []
                # filters are re-applied so a row changed after the SELECT is skipped
                updated = model.objects.filter(pk__in=pks, **filters).update(**values)
                if not updated:
                    return []
                return list(model.objects.filter(pk__in=pks).values())
        except DatabaseError as exc:
            logger.error("Update of %s failed: %s", collection, exc)
            raise StoreError(f"Failed to update {collection}") from exc

    def select(
        self,
        collection: str,
        filters: Optional[Row] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        model = self._model(collection)
        try:
            qs = model.objects.filter(**(filters or {}))
            if order_by:
                qs = qs.order_by(*order_by)
            qs = qs.values()
            if limit is not None:
                qs = qs[:limit]
            return list(qs)
        except DatabaseError as exc:
            logger.error("Select from %s failed: %s", collection, exc)
            raise StoreError(f"Failed to read {collection}") from exc

    def upsert(self, collection: str, values: Row, on_conflict: Iterable[str]) -> Row:
        model = self._model(collection)
        keys = list(on_conflict)
        lookup = {key: values[key] for key in keys}
        defaults = {key: value for key, value in values.items() if key not in keys}
        try:
            obj, _ = model.objects.update_or_create(defaults=defaults, **lookup)
            return self._row(model, obj.pk)
        except DatabaseError as exc:
            logger.error("Upsert into %s failed: %s", collection, exc)
            raise StoreError(f"Failed to upsert into {collection}") from exc
