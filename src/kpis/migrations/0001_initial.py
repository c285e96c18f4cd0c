import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="MetricDefinition",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                (
                    "category",
                    models.CharField(
                        choices=[("sales", "Ventes"), ("development", "Developpement")],
                        max_length=20,
                        verbose_name="categorie",
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("appointments", "Rendez-vous"),
                            ("closings", "Closings"),
                            ("contract_negotiations", "Negociations de contrats"),
                            ("contract_closings", "Contrats signes"),
                        ],
                        max_length=40,
                        verbose_name="type",
                    ),
                ),
                ("name", models.CharField(max_length=120, verbose_name="nom")),
                ("unit", models.CharField(max_length=20, verbose_name="unite")),
                (
                    "minimum_target",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                        verbose_name="objectif minimum",
                    ),
                ),
                (
                    "standard_target",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                        verbose_name="objectif standard",
                    ),
                ),
                (
                    "stretch_target",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                        verbose_name="objectif ambitieux",
                    ),
                ),
                (
                    "current_value",
                    models.DecimalField(
                        decimal_places=4,
                        default=Decimal("0"),
                        max_digits=16,
                        verbose_name="valeur courante",
                    ),
                ),
                ("value_synced_at", models.DateTimeField(blank=True, null=True, verbose_name="synchronise le")),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="kpi_metrics",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="responsable",
                    ),
                ),
            ],
            options={
                "verbose_name": "indicateur KPI",
                "verbose_name_plural": "indicateurs KPI",
                "db_table": "metric_definitions",
                "ordering": ["owner_id", "category", "type"],
                "indexes": [
                    models.Index(fields=["owner", "category"], name="kpi_metric_owner_cat_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("owner", "type"), name="uniq_metric_type_per_owner"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DailyEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                ("date", models.DateField(verbose_name="date")),
                (
                    "actual_value",
                    models.DecimalField(
                        decimal_places=4,
                        max_digits=16,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                        verbose_name="valeur realisee",
                    ),
                ),
                ("is_achieved", models.BooleanField(default=False, verbose_name="atteint")),
                ("notes", models.TextField(blank=True, verbose_name="notes")),
                (
                    "metric",
                    models.ForeignKey(
                        db_constraint=False,
                        on_delete=django.db.models.deletion.DO_NOTHING,
                        related_name="entries",
                        to="kpis.metricdefinition",
                        verbose_name="indicateur",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="kpi_entries",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="responsable",
                    ),
                ),
            ],
            options={
                "verbose_name": "saisie journaliere",
                "verbose_name_plural": "saisies journalieres",
                "db_table": "daily_entries",
                "ordering": ["date"],
                "indexes": [
                    models.Index(fields=["owner", "date"], name="kpi_entry_owner_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("metric", "date"), name="uniq_daily_entry_per_metric"),
                ],
            },
        ),
    ]
