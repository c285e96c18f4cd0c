"""Celery tasks for the kpis module."""
from __future__ import annotations

import logging

from celery import shared_task

from kpis.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def sync_owner_month(self, *, owner_id, year: int, month: int):
    """Reconcile current values of one owner for a given month."""
    from kpis.sync import ReconciliationSync

    try:
        written = ReconciliationSync().sync_rollup_to_definition(owner_id, year, month)
    except PersistenceError as exc:
        logger.warning(
            "sync_owner_month failed owner=%s %d-%02d (attempt %d): %s",
            owner_id,
            year,
            month,
            self.request.retries + 1,
            exc,
        )
        raise self.retry(exc=exc)
    logger.info("Synced owner=%s %d-%02d (%d metrics)", owner_id, year, month, len(written))
    return len(written)


@shared_task
def sync_all_owners_month(*, year: int, month: int):
    """Queue one reconciliation per owner having at least one metric."""
    from kpis.models import MetricDefinition

    owner_ids = list(
        MetricDefinition.objects.order_by().values_list("owner_id", flat=True).distinct()
    )
    for owner_id in owner_ids:
        sync_owner_month.delay(owner_id=owner_id, year=year, month=month)
    logger.info("Queued sync for %d owners (%d-%02d)", len(owner_ids), year, month)
    return len(owner_ids)
