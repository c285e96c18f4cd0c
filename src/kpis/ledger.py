"""Daily entry ledger: one actual value per (metric, calendar day).

Entries are written by whole-record upsert on the ``(metric_id, date)`` key, so
re-submitting the same day simply replaces the previous record. The
``is_achieved`` flag compares the value with the metric's minimum target
pro-rated over every calendar day of the month, weekends included.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, NamedTuple
from uuid import UUID

from kpis.classifier import Achievement, Tiers, classify, to_decimal
from kpis.clock import SystemClock
from kpis.definitions import MetricDefinitionStore
from kpis.exceptions import ValidationError
from kpis.models import DailyEntry
from kpis.store import RecordStore

logger = logging.getLogger(__name__)

# Matches the decimal_places of DailyEntry.actual_value.
VALUE_QUANTUM = Decimal("0.0001")


class EntryKey(NamedTuple):
    metric_id: UUID
    date: date


def parse_day(value) -> date:
    """Accept a date, a datetime or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"date: format attendu YYYY-MM-DD (recu {value!r}).") from None


class DailyEntryLedger:
    def __init__(self, definitions=None, store=None, clock=None) -> None:
        self.definitions = definitions or MetricDefinitionStore()
        self.store = store or RecordStore(DailyEntry)
        self.clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Pro-rating
    # ------------------------------------------------------------------

    def daily_tiers(self, metric, day: date) -> Tiers:
        """Monthly tiers of ``metric`` divided by the number of days in ``day``'s month."""
        days = self.clock.days_in_month(day.year, day.month)
        return Tiers.of(metric).pro_rated(days)

    def pro_rated_daily_minimum(self, metric, day: date) -> Decimal:
        return self.daily_tiers(metric, day).minimum

    def is_achieved(self, metric, value, day: date) -> bool:
        return classify(value, self.daily_tiers(metric, day)) >= Achievement.AT_MINIMUM

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_entry(self, metric_id, owner_id, date=None, actual_value=None, notes=None) -> DailyEntry:
        """Record ``actual_value`` for ``metric_id`` on ``date`` (today when omitted).

        Idempotent: the same arguments always leave exactly one identical entry.
        """
        value = to_decimal(actual_value, "actual_value")
        if value < 0:
            raise ValidationError("actual_value: la valeur ne peut pas etre negative.")
        try:
            value = value.quantize(VALUE_QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError("actual_value: valeur trop grande.") from None
        day = self.clock.today() if date is None else parse_day(date)
        try:
            owner_pk = int(owner_id)
        except (TypeError, ValueError):
            raise ValidationError(f"owner: identifiant invalide (recu {owner_id!r}).") from None

        metric = self.definitions.get(metric_id)
        if metric.owner_id != owner_pk:
            raise ValidationError("owner: l'indicateur appartient a un autre utilisateur.")

        achieved = self.is_achieved(metric, value, day)
        record = {
            "metric_id": metric.pk,
            "date": day,
            "owner_id": metric.owner_id,
            "actual_value": value,
            "is_achieved": achieved,
            "notes": notes or "",
        }
        (entry,) = self.store.upsert([record], conflict_keys=("metric_id", "date"))
        logger.debug(
            "Ledger upsert metric=%s date=%s value=%s achieved=%s",
            metric.pk,
            day,
            value,
            achieved,
        )
        return entry

    def reclassify(self, metric_id) -> int:
        """Recompute ``is_achieved`` of every entry after a tier change.

        Returns the number of entries whose flag changed.
        """
        metric = self.definitions.find(metric_id)
        if metric is None:
            return 0
        records = []
        for entry in self.store.select(metric_id=metric.pk):
            achieved = self.is_achieved(metric, entry.actual_value, entry.date)
            if achieved == entry.is_achieved:
                continue
            records.append(
                {
                    "metric_id": entry.metric_id,
                    "date": entry.date,
                    "owner_id": entry.owner_id,
                    "actual_value": entry.actual_value,
                    "is_achieved": achieved,
                    "notes": entry.notes,
                }
            )
        if records:
            self.store.upsert(records, conflict_keys=("metric_id", "date"))
            logger.info("Reclassified %d entries of metric %s", len(records), metric.pk)
        return len(records)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entries_in_range(
        self,
        owner_id,
        metric_ids: Iterable | None,
        start_date: date,
        end_date: date,
    ) -> list[DailyEntry]:
        """Entries of ``owner_id`` dated within ``[start_date, end_date]``.

        ``metric_ids=None`` means every metric of the owner.
        """
        filters = {
            "owner_id": owner_id,
            "date__gte": parse_day(start_date),
            "date__lte": parse_day(end_date),
        }
        if metric_ids is not None:
            filters["metric_id__in"] = list(metric_ids)
        return self.store.select(order_by=("date", "metric_id"), **filters)

    def get_metric_entries(self, metric_id, start_date: date, end_date: date) -> list[DailyEntry]:
        return self.store.select(
            metric_id=metric_id,
            date__gte=start_date,
            date__lte=end_date,
            order_by=("date",),
        )

    def entries_by_key(self, owner_id, metric_ids, start_date, end_date) -> dict[EntryKey, DailyEntry]:
        """Calendar projection of a range, keyed by ``(metric_id, date)``."""
        return {
            EntryKey(entry.metric_id, entry.date): entry
            for entry in self.get_entries_in_range(owner_id, metric_ids, start_date, end_date)
        }

    def classify_entry(self, entry: DailyEntry) -> Achievement:
        """Place one day's value on the pro-rated ladder of its metric."""
        metric = self.definitions.find(entry.metric_id)
        if metric is None:
            return Achievement.UNCLASSIFIED
        return classify(entry.actual_value, self.daily_tiers(metric, entry.date))
