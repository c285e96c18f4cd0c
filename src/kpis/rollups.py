"""Rollups of daily entries into weekly, monthly and yearly totals.

Monthly rollups are a derived view: they are cached in the Django cache and
dropped by the receivers in ``kpis.signals`` whenever an entry or a metric
changes. Cache writes and drops are tied to the surrounding transaction, so a
rolled back write never leaves its totals in the cache.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import NamedTuple
from uuid import UUID

from django.conf import settings
from django.core.cache import cache
from django.db import transaction

from kpis.classifier import Achievement, Tiers, classify, progress_percentage
from kpis.clock import month_bounds, week_bounds
from kpis.definitions import MetricDefinitionStore
from kpis.ledger import DailyEntryLedger

logger = logging.getLogger(__name__)

CACHE_PREFIX = "kpi:rollup"


class MonthKey(NamedTuple):
    metric_id: UUID
    year: int
    month: int

    @property
    def cache_key(self) -> str:
        return f"{CACHE_PREFIX}:{self.metric_id}:{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class MonthlyRollup:
    metric_id: UUID
    year: int
    month: int
    total_actual: Decimal = Decimal("0")
    days_recorded: int = 0
    days_achieved: int = 0
    achievement: Achievement = Achievement.UNCLASSIFIED

    @property
    def key(self) -> MonthKey:
        return MonthKey(self.metric_id, self.year, self.month)


@dataclass(frozen=True)
class WeeklyRollup:
    metric_id: UUID
    week_start: date
    week_end: date
    total_actual: Decimal = Decimal("0")
    days_recorded: int = 0
    days_achieved: int = 0
    progress_percentage: int = 0


@dataclass(frozen=True)
class YearlyRollup:
    metric_id: UUID
    year: int
    total_actual: Decimal = Decimal("0")
    days_recorded: int = 0
    days_achieved: int = 0
    months_at_standard: int = 0
    months: tuple[MonthlyRollup, ...] = field(default_factory=tuple)


def _totals(entries) -> tuple[Decimal, int, int]:
    total = sum((Decimal(entry.actual_value) for entry in entries), Decimal("0"))
    achieved = sum(1 for entry in entries if entry.is_achieved)
    return total, len(entries), achieved


def _drop(keys: list[str]) -> None:
    # Dropped now for later reads in the same transaction, and again on commit
    # for copies cached by concurrent readers in between.
    cache.delete_many(keys)
    transaction.on_commit(lambda: cache.delete_many(keys))


def invalidate_month(metric_id, year: int, month: int) -> None:
    _drop([MonthKey(metric_id, year, month).cache_key])


def invalidate_metric(metric_id, years) -> None:
    """Drop every cached month of ``metric_id`` for the given years."""
    _drop([MonthKey(metric_id, year, month).cache_key for year in years for month in range(1, 13)])


class RollupEngine:
    def __init__(self, ledger=None, definitions=None, cache_timeout=None) -> None:
        self.definitions = definitions or MetricDefinitionStore()
        self.ledger = ledger or DailyEntryLedger(definitions=self.definitions)
        if cache_timeout is None:
            cache_timeout = getattr(settings, "KPI_ROLLUP_CACHE_TIMEOUT", 300)
        self.cache_timeout = cache_timeout

    # ------------------------------------------------------------------
    # Monthly
    # ------------------------------------------------------------------

    def compute_monthly_rollup(self, metric_id, year: int, month: int) -> MonthlyRollup:
        """Aggregate one calendar month of a metric.

        A metric that no longer exists yields an empty, unclassified rollup.
        """
        metric = self.definitions.find(metric_id)
        if metric is None:
            logger.debug("Rollup for unknown metric %s (%d-%02d)", metric_id, year, month)
            return MonthlyRollup(metric_id=metric_id, year=year, month=month)
        return self._monthly(metric, year, month)

    def compute_all(self, owner_id, year: int, month: int) -> dict[UUID, MonthlyRollup]:
        """Monthly rollups of every live metric of ``owner_id``."""
        return {
            metric.pk: self._monthly(metric, year, month)
            for metric in self.definitions.list_by_owner(owner_id)
        }

    def _monthly(self, metric, year: int, month: int) -> MonthlyRollup:
        key = MonthKey(metric.pk, year, month)
        cached = cache.get(key.cache_key)
        if cached is not None:
            return cached

        start, end = month_bounds(year, month)
        total, recorded, achieved = _totals(self.ledger.get_metric_entries(metric.pk, start, end))
        rollup = MonthlyRollup(
            metric_id=metric.pk,
            year=year,
            month=month,
            total_actual=total,
            days_recorded=recorded,
            days_achieved=achieved,
            achievement=classify(total, Tiers.of(metric)),
        )
        transaction.on_commit(lambda: cache.set(key.cache_key, rollup, self.cache_timeout))
        return rollup

    # ------------------------------------------------------------------
    # Weekly / yearly
    # ------------------------------------------------------------------

    def compute_weekly_rollup(self, metric_id, day: date) -> WeeklyRollup:
        """Totals of the Monday-start week containing ``day``.

        Progress is measured against the monthly standard target.
        """
        start, end = week_bounds(day)
        metric = self.definitions.find(metric_id)
        if metric is None:
            return WeeklyRollup(metric_id=metric_id, week_start=start, week_end=end)
        total, recorded, achieved = _totals(self.ledger.get_metric_entries(metric.pk, start, end))
        return WeeklyRollup(
            metric_id=metric.pk,
            week_start=start,
            week_end=end,
            total_actual=total,
            days_recorded=recorded,
            days_achieved=achieved,
            progress_percentage=progress_percentage(total, metric.standard_target),
        )

    def compute_yearly_rollup(self, metric_id, year: int) -> YearlyRollup:
        metric = self.definitions.find(metric_id)
        if metric is None:
            return YearlyRollup(metric_id=metric_id, year=year)
        months = tuple(self._monthly(metric, year, month) for month in range(1, 13))
        return YearlyRollup(
            metric_id=metric.pk,
            year=year,
            total_actual=sum((m.total_actual for m in months), Decimal("0")),
            days_recorded=sum(m.days_recorded for m in months),
            days_achieved=sum(m.days_achieved for m in months),
            months_at_standard=sum(1 for m in months if m.achievement >= Achievement.AT_STANDARD),
            months=months,
        )
