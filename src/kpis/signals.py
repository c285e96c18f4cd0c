"""Signals: keep cached rollups and stored achievement flags consistent."""
from __future__ import annotations

import logging

from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from kpis.models import TIER_FIELDS, DailyEntry, MetricDefinition
from kpis.rollups import invalidate_metric, invalidate_month

logger = logging.getLogger(__name__)


def _tiers_of(instance) -> tuple | None:
    if instance is None:
        return None
    return tuple(getattr(instance, field) for field in TIER_FIELDS)


def _entry_years(metric_id) -> list[int]:
    return [
        day.year
        for day in DailyEntry.objects.filter(metric_id=metric_id).dates("date", "year")
    ]


@receiver(pre_save, sender=MetricDefinition)
def on_metric_pre_save(sender, instance, **kwargs):
    """Capture previous tiers to detect changes in post_save."""
    if instance._state.adding:
        instance._previous_tiers = None
        return
    previous = sender.objects.filter(pk=instance.pk).only(*TIER_FIELDS).first()
    instance._previous_tiers = _tiers_of(previous)


@receiver(post_save, sender=MetricDefinition)
def on_metric_saved(sender, instance, created, **kwargs):
    """Re-flag stored entries when the tiers moved."""
    if created:
        return
    previous = getattr(instance, "_previous_tiers", None)
    if previous is None:
        return
    current = tuple(
        sender._meta.get_field(field).to_python(value)
        for field, value in zip(TIER_FIELDS, _tiers_of(instance))
    )
    if previous == current:
        return

    from kpis.ledger import DailyEntryLedger

    changed = DailyEntryLedger().reclassify(instance.pk)
    invalidate_metric(instance.pk, _entry_years(instance.pk))
    logger.info("Tiers of metric %s changed, %d entries re-flagged", instance.pk, changed)


@receiver(post_delete, sender=MetricDefinition)
def on_metric_deleted(sender, instance, **kwargs):
    invalidate_metric(instance.pk, _entry_years(instance.pk))


@receiver(post_save, sender=DailyEntry)
def on_entry_saved(sender, instance, **kwargs):
    invalidate_month(instance.metric_id, instance.date.year, instance.date.month)


@receiver(post_delete, sender=DailyEntry)
def on_entry_deleted(sender, instance, **kwargs):
    invalidate_month(instance.metric_id, instance.date.year, instance.date.month)
