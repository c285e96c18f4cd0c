"""Metric definitions: creation, tier derivation, template assignment."""
from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from kpis.classifier import Tiers, to_decimal
from kpis.exceptions import NotFoundError, ValidationError
from kpis.models import (
    METRIC_TYPE_DEFAULTS,
    MetricCategory,
    MetricDefinition,
    MetricType,
)
from kpis.store import RecordStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "category",
    "type",
    "name",
    "unit",
    "minimum_target",
    "standard_target",
    "stretch_target",
    "current_value",
)


def _parse_type(value) -> str:
    if value not in MetricType.values:
        raise ValidationError(f"type: type de KPI inconnu ({value!r}).")
    return value


def _describe(fields: Mapping) -> dict:
    """Validate the descriptive fields, filling gaps from the type catalog."""
    metric_type = _parse_type(fields.get("type"))
    defaults = METRIC_TYPE_DEFAULTS[metric_type]

    category = fields.get("category") or defaults["category"]
    if category not in MetricCategory.values:
        raise ValidationError(f"category: categorie inconnue ({category!r}).")

    unit = fields.get("unit", defaults["unit"])
    if unit is None or not str(unit).strip():
        raise ValidationError("unit: l'unite est obligatoire.")

    name = fields.get("name") or MetricType(metric_type).label
    return {
        "type": metric_type,
        "category": str(category),
        "name": str(name).strip(),
        "unit": str(unit).strip(),
    }


def _tier_fields(tiers: Tiers) -> dict:
    return {
        "minimum_target": tiers.minimum,
        "standard_target": tiers.standard,
        "stretch_target": tiers.stretch,
    }


class MetricDefinitionStore:
    """Owns metric records and the minimum <= standard <= stretch invariant."""

    def __init__(self, store: RecordStore | None = None, default_standard_target=None) -> None:
        self.store = store or RecordStore(MetricDefinition)
        if default_standard_target is None:
            default_standard_target = getattr(settings, "KPI_DEFAULT_STANDARD_TARGET", 10)
        self.default_standard_target = to_decimal(default_standard_target, "standard_target")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, metric_id) -> MetricDefinition | None:
        try:
            return self.store.first(pk=metric_id)
        except DjangoValidationError:
            # Malformed UUID: nothing can match it.
            return None

    def get(self, metric_id) -> MetricDefinition:
        metric = self.find(metric_id)
        if metric is None:
            raise NotFoundError(f"Indicateur introuvable: {metric_id}.")
        return metric

    def list_by_owner(self, owner_id) -> list[MetricDefinition]:
        return self.store.select(owner_id=owner_id)

    def list_by_owner_and_category(self, owner_id, category=None) -> list[MetricDefinition]:
        if category is None:
            return self.list_by_owner(owner_id)
        return self.store.select(owner_id=owner_id, category=category)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, owner_id, fields: Mapping) -> MetricDefinition:
        """Create a metric from ``fields``.

        ``standard_target`` is required; an omitted minimum or stretch target is
        derived from it (x0.7 / x1.3, rounded half up).
        """
        descriptive = _describe(fields)
        if fields.get("standard_target") is None:
            raise ValidationError("standard_target: l'objectif standard est obligatoire.")
        tiers = Tiers.derive(
            fields["standard_target"],
            minimum=fields.get("minimum_target"),
            stretch=fields.get("stretch_target"),
        )
        current_value = to_decimal(fields.get("current_value", 0), "current_value")

        if self.store.first(owner_id=owner_id, type=descriptive["type"]) is not None:
            raise ValidationError(
                f"type: cet utilisateur suit deja le KPI {descriptive['type']!r}."
            )

        record = {
            "id": uuid.uuid4(),
            "owner_id": owner_id,
            **descriptive,
            **_tier_fields(tiers),
            "current_value": current_value,
        }
        (metric,) = self.store.upsert([record], conflict_keys=("id",))
        logger.info(
            "Created metric %s (%s) for owner=%s tiers=%s/%s/%s",
            metric.pk,
            metric.type,
            owner_id,
            tiers.minimum,
            tiers.standard,
            tiers.stretch,
        )
        return metric

    def update(self, metric_id, partial: Mapping) -> MetricDefinition:
        """Merge ``partial`` into the stored metric and re-check the tier ordering."""
        unknown = set(partial) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Champs non modifiables: {', '.join(sorted(unknown))}.")

        metric = self.get(metric_id)
        merged = {field: getattr(metric, field) for field in UPDATABLE_FIELDS}
        merged.update(partial)

        descriptive = _describe(merged)
        tiers = Tiers(
            minimum=to_decimal(merged["minimum_target"], "minimum_target"),
            standard=to_decimal(merged["standard_target"], "standard_target"),
            stretch=to_decimal(merged["stretch_target"], "stretch_target"),
        )
        tiers.validate()
        current_value = to_decimal(merged["current_value"], "current_value")

        if descriptive["type"] != metric.type and self.store.first(
            owner_id=metric.owner_id, type=descriptive["type"]
        ) is not None:
            raise ValidationError(
                f"type: cet utilisateur suit deja le KPI {descriptive['type']!r}."
            )

        record = {
            "id": metric.pk,
            "owner_id": metric.owner_id,
            **descriptive,
            **_tier_fields(tiers),
            "current_value": current_value,
        }
        (metric,) = self.store.upsert([record], conflict_keys=("id",))
        logger.info("Updated metric %s fields=%s", metric.pk, sorted(partial))
        return metric

    def delete(self, metric_id) -> bool:
        """Remove the definition only; its ledger entries are left as orphans."""
        metric = self.find(metric_id)
        if metric is None:
            return False
        deleted = self.store.delete(pk=metric.pk)
        logger.info("Deleted metric %s (owner=%s)", metric.pk, metric.owner_id)
        return deleted > 0

    def assign_template(self, owner_id, metric_types: Iterable[str]) -> list[MetricDefinition]:
        """(Re)create one metric per type with the default tiers.

        Overwrite-by-replace keyed on owner + type: custom tiers, name and unit
        of an existing metric of that type are discarded, its id and current
        value are kept.
        """
        types = list(dict.fromkeys(_parse_type(value) for value in metric_types))
        tiers = Tiers.derive(self.default_standard_target)

        records = []
        for metric_type in types:
            defaults = METRIC_TYPE_DEFAULTS[metric_type]
            records.append(
                {
                    "owner_id": owner_id,
                    "type": metric_type,
                    "category": str(defaults["category"]),
                    "name": MetricType(metric_type).label,
                    "unit": defaults["unit"],
                    **_tier_fields(tiers),
                }
            )
        written = self.store.upsert(records, conflict_keys=("owner_id", "type"))
        logger.info(
            "Assigned %d template metric(s) to owner=%s: %s",
            len(written),
            owner_id,
            ", ".join(types),
        )
        return written
