"""Write monthly rollup totals back into the metric definitions."""
from __future__ import annotations

import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from kpis.definitions import MetricDefinitionStore
from kpis.exceptions import PersistenceError
from kpis.models import MetricDefinition
from kpis.rollups import RollupEngine

logger = logging.getLogger(__name__)


class ReconciliationSync:
    """Bridge between the derived rollups and ``MetricDefinition.current_value``."""

    def __init__(self, rollups: RollupEngine | None = None, definitions=None) -> None:
        self.definitions = definitions or MetricDefinitionStore()
        self.rollups = rollups or RollupEngine(definitions=self.definitions)

    def sync_rollup_to_definition(self, owner_id, year: int, month: int) -> list[MetricDefinition]:
        """Copy each monthly total of ``owner_id`` into its metric's current value.

        The whole batch is written in one transaction keyed by ``(id, owner_id)``:
        if any record cannot be written nothing is committed and
        ``PersistenceError`` is raised. Last write wins, there is no locking.
        """
        rollups = self.rollups.compute_all(owner_id, year, month)
        if not rollups:
            logger.info("Nothing to sync for owner=%s %d-%02d", owner_id, year, month)
            return []

        synced_at = timezone.now()
        records = [
            {
                "id": metric_id,
                "owner_id": owner_id,
                "current_value": rollup.total_actual,
                "value_synced_at": synced_at,
            }
            for metric_id, rollup in rollups.items()
        ]

        store = self.definitions.store
        try:
            with transaction.atomic():
                live = set(
                    MetricDefinition.objects.filter(
                        owner_id=owner_id, pk__in=list(rollups)
                    ).values_list("pk", flat=True)
                )
                missing = [str(metric_id) for metric_id in rollups if metric_id not in live]
                if missing:
                    raise PersistenceError(
                        f"Indicateurs supprimes pendant la synchronisation: {', '.join(missing)}."
                    )
                written = store.upsert(records, conflict_keys=("id", "owner_id"))
        except DatabaseError as exc:
            logger.error(
                "Sync failed for owner=%s %d-%02d: %s",
                owner_id,
                year,
                month,
                exc,
                exc_info=True,
            )
            raise PersistenceError(f"Synchronisation impossible pour {owner_id}.") from exc
        except PersistenceError:
            logger.error("Sync aborted for owner=%s %d-%02d", owner_id, year, month, exc_info=True)
            raise

        logger.info(
            "Synced %d metric(s) for owner=%s %d-%02d",
            len(written),
            owner_id,
            year,
            month,
        )
        return written
