"""Models for the KPI tracking module."""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from core.models import TimeStampedModel
from kpis.classifier import Tiers
from kpis.exceptions import KpiError


class MetricCategory(models.TextChoices):
    SALES = "sales", "Ventes"
    DEVELOPMENT = "development", "Developpement"


class MetricType(models.TextChoices):
    APPOINTMENTS = "appointments", "Rendez-vous"
    CLOSINGS = "closings", "Closings"
    CONTRACT_NEGOTIATIONS = "contract_negotiations", "Negociations de contrats"
    CONTRACT_CLOSINGS = "contract_closings", "Contrats signes"


# Default category and unit per metric type, used by templates and manual
# creation when the caller leaves them out.
METRIC_TYPE_DEFAULTS = {
    MetricType.APPOINTMENTS: {"category": MetricCategory.SALES, "unit": "件"},
    MetricType.CLOSINGS: {"category": MetricCategory.SALES, "unit": "件"},
    MetricType.CONTRACT_NEGOTIATIONS: {"category": MetricCategory.DEVELOPMENT, "unit": "件"},
    MetricType.CONTRACT_CLOSINGS: {"category": MetricCategory.DEVELOPMENT, "unit": "件"},
}

TIER_FIELDS = ("minimum_target", "standard_target", "stretch_target")


class MetricDefinition(TimeStampedModel):
    """A KPI tracked by one owner against three ordered target tiers.

    ``current_value`` is the materialized monthly total written back by the
    reconciliation sync; the ledger stays the source of truth.
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="kpi_metrics",
        verbose_name="responsable",
    )
    category = models.CharField("categorie", max_length=20, choices=MetricCategory.choices)
    type = models.CharField("type", max_length=40, choices=MetricType.choices)
    name = models.CharField("nom", max_length=120)
    unit = models.CharField("unite", max_length=20)
    minimum_target = models.DecimalField(
        "objectif minimum",
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    standard_target = models.DecimalField(
        "objectif standard",
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    stretch_target = models.DecimalField(
        "objectif ambitieux",
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    current_value = models.DecimalField(
        "valeur courante",
        max_digits=16,
        decimal_places=4,
        default=Decimal("0"),
    )
    value_synced_at = models.DateTimeField("synchronise le", null=True, blank=True)

    class Meta:
        db_table = "metric_definitions"
        verbose_name = "indicateur KPI"
        verbose_name_plural = "indicateurs KPI"
        ordering = ["owner_id", "category", "type"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "type"],
                name="uniq_metric_type_per_owner",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "category"], name="kpi_metric_owner_cat_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.owner_id})"

    def clean(self) -> None:
        if any(getattr(self, field) is None for field in TIER_FIELDS):
            return
        try:
            Tiers.of(self).validate()
        except KpiError as exc:
            raise ValidationError(str(exc)) from exc


class DailyEntry(TimeStampedModel):
    """Actual value recorded for one metric on one calendar day.

    ``metric`` carries no database constraint: deleting a definition leaves its
    entries in place as orphans, which rollups never read again.
    """

    metric = models.ForeignKey(
        MetricDefinition,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="entries",
        verbose_name="indicateur",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="kpi_entries",
        verbose_name="responsable",
    )
    date = models.DateField("date")
    actual_value = models.DecimalField(
        "valeur realisee",
        max_digits=16,
        decimal_places=4,
        validators=[MinValueValidator(Decimal("0"))],
    )
    is_achieved = models.BooleanField("atteint", default=False)
    notes = models.TextField("notes", blank=True)

    class Meta:
        db_table = "daily_entries"
        verbose_name = "saisie journaliere"
        verbose_name_plural = "saisies journalieres"
        ordering = ["date"]
        constraints = [
            models.UniqueConstraint(
                fields=["metric", "date"],
                name="uniq_daily_entry_per_metric",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "date"], name="kpi_entry_owner_date_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.metric_id} {self.date}: {self.actual_value}"

    def clean(self) -> None:
        if not self.metric_id or not self.owner_id:
            return
        metric_owner = (
            MetricDefinition.objects.filter(pk=self.metric_id).values_list("owner_id", flat=True).first()
        )
        if metric_owner is not None and metric_owner != self.owner_id:
            raise ValidationError("La saisie doit appartenir au responsable de l'indicateur.")
