"""Read-side projections consumed by the owner and admin dashboards."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from kpis.classifier import Achievement, Tiers, classify, completion_summary, progress_percentage
from kpis.directory import OwnerNameResolver, resolve_owner_name
from kpis.models import MetricDefinition
from kpis.rollups import MonthlyRollup, RollupEngine

logger = logging.getLogger(__name__)


def _targets(metric: MetricDefinition | None) -> dict:
    if metric is None:
        return {"minimum": Decimal("0"), "standard": Decimal("0"), "stretch": Decimal("0")}
    tiers = Tiers.of(metric)
    return {"minimum": tiers.minimum, "standard": tiers.standard, "stretch": tiers.stretch}


def _metric_row(metric: MetricDefinition, rollup: MonthlyRollup) -> dict:
    return {
        "id": metric.pk,
        "type": metric.type,
        "category": metric.category,
        "name": metric.name,
        "unit": metric.unit,
        "targets": _targets(metric),
        "current_value": metric.current_value,
        "value_synced_at": metric.value_synced_at,
        "total_actual": rollup.total_actual,
        "days_recorded": rollup.days_recorded,
        "days_achieved": rollup.days_achieved,
        "achievement": rollup.achievement.status,
        "progress_percentage": progress_percentage(rollup.total_actual, metric.standard_target),
    }


def build_owner_dashboard(
    owner_id,
    year: int,
    month: int,
    *,
    rollups: RollupEngine | None = None,
    resolve_name: OwnerNameResolver = resolve_owner_name,
) -> dict:
    """Every metric of ``owner_id`` with its monthly rollup, plus completion ratios."""
    rollups = rollups or RollupEngine()
    monthly = rollups.compute_all(owner_id, year, month)
    metrics = rollups.definitions.store.select(pk__in=list(monthly))
    return {
        "owner": {"id": owner_id, "name": resolve_name(owner_id)},
        "period": {"year": year, "month": month},
        "metrics": [_metric_row(metric, monthly[metric.pk]) for metric in metrics],
        "completion": completion_summary(metrics),
    }


def build_admin_overview(
    owner_ids: Iterable,
    metric_type: str,
    *,
    rollups: RollupEngine | None = None,
    resolve_name: OwnerNameResolver = resolve_owner_name,
) -> list[dict]:
    """One row per owner for ``metric_type``, based on the synced current value.

    Owners who do not track that metric get a zero row with status ``none``.
    """
    rollups = rollups or RollupEngine()
    owner_ids = list(owner_ids)
    by_owner = {
        str(metric.owner_id): metric
        for metric in rollups.definitions.store.select(
            owner_id__in=owner_ids, type=metric_type
        )
    }

    rows = []
    for owner_id in owner_ids:
        metric = by_owner.get(str(owner_id))
        if metric is None:
            value = Decimal("0")
            achievement = Achievement.UNCLASSIFIED
            progress = 0
        else:
            value = Decimal(metric.current_value)
            achievement = classify(value, Tiers.of(metric))
            progress = progress_percentage(value, metric.standard_target)
        rows.append(
            {
                "owner_id": owner_id,
                "owner_name": resolve_name(owner_id),
                "metric_id": getattr(metric, "pk", None),
                "value": value,
                "targets": _targets(metric),
                "progress_percentage": progress,
                "achievement": achievement.status,
            }
        )
    logger.debug("Admin overview type=%s owners=%d tracked=%d", metric_type, len(rows), len(by_owner))
    return rows
