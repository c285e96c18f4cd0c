"""Persistence boundary shared by the metric definitions and the ledger.

Both collaborators only ever talk to the database through ``RecordStore``:
``upsert`` keyed by a natural key, ``select`` by predicate. Database failures
surface as ``PersistenceError`` with the database exception chained.
"""
from __future__ import annotations

import logging
from typing import Sequence

from django.db import DatabaseError, transaction
from django.db.models import Model, Q

from kpis.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class RecordStore:
    """Generic upsert / select over one Django model."""

    def __init__(self, model: type[Model]) -> None:
        self.model = model

    @property
    def label(self) -> str:
        return self.model._meta.db_table

    def upsert(self, records: Sequence[dict], conflict_keys: Sequence[str]) -> list:
        """Insert each record, or overwrite the row matching ``conflict_keys``.

        Every field of a record replaces the stored one (no partial merge).
        The batch is atomic: one failing record means nothing is written.
        """
        written = []
        try:
            with transaction.atomic():
                for record in records:
                    lookup = {key: record[key] for key in conflict_keys}
                    defaults = {
                        field: value
                        for field, value in record.items()
                        if field not in conflict_keys
                    }
                    obj, _created = self.model.objects.update_or_create(
                        defaults=defaults, **lookup
                    )
                    written.append(obj)
        except DatabaseError as exc:
            logger.error(
                "Upsert of %d record(s) into %s failed: %s",
                len(records),
                self.label,
                exc,
                exc_info=True,
            )
            raise PersistenceError(f"Ecriture impossible dans {self.label}.") from exc
        return written

    def select(self, *predicates: Q, order_by: Sequence[str] = (), **filters) -> list:
        """Return every record matching the predicates, evaluated eagerly."""
        try:
            queryset = self.model.objects.filter(*predicates, **filters)
            if order_by:
                queryset = queryset.order_by(*order_by)
            return list(queryset)
        except DatabaseError as exc:
            logger.error("Select on %s failed: %s", self.label, exc, exc_info=True)
            raise PersistenceError(f"Lecture impossible dans {self.label}.") from exc

    def first(self, *predicates: Q, **filters):
        """Return the first matching record or ``None``."""
        try:
            return self.model.objects.filter(*predicates, **filters).first()
        except DatabaseError as exc:
            logger.error("Select on %s failed: %s", self.label, exc, exc_info=True)
            raise PersistenceError(f"Lecture impossible dans {self.label}.") from exc

    def delete(self, **filters) -> int:
        try:
            deleted, _per_model = self.model.objects.filter(**filters).delete()
        except DatabaseError as exc:
            logger.error("Delete on %s failed: %s", self.label, exc, exc_info=True)
            raise PersistenceError(f"Suppression impossible dans {self.label}.") from exc
        return deleted
