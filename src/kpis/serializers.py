"""DRF Serializers for the kpis module."""
from __future__ import annotations

from rest_framework import serializers

from kpis.models import DailyEntry, MetricCategory, MetricDefinition, MetricType


# ────────────────────────────────────────────────────────────
# Metric definitions
# ────────────────────────────────────────────────────────────

class MetricDefinitionSerializer(serializers.ModelSerializer):
    class Meta:
        model = MetricDefinition
        fields = [
            "id", "owner", "category", "type", "name", "unit",
            "minimum_target", "standard_target", "stretch_target",
            "current_value", "value_synced_at", "created_at", "updated_at",
        ]
        read_only_fields = fields


class MetricDefinitionWriteSerializer(serializers.Serializer):
    """Shape check only; tier rules live in MetricDefinitionStore."""
    type = serializers.ChoiceField(choices=MetricType.choices)
    category = serializers.ChoiceField(choices=MetricCategory.choices, required=False)
    name = serializers.CharField(max_length=120, required=False)
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True)
    minimum_target = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True
    )
    standard_target = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True
    )
    stretch_target = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True
    )


class AssignTemplateSerializer(serializers.Serializer):
    metric_types = serializers.ListField(
        child=serializers.ChoiceField(choices=MetricType.choices),
        allow_empty=False,
    )


# ────────────────────────────────────────────────────────────
# Daily entries
# ────────────────────────────────────────────────────────────

class DailyEntrySerializer(serializers.ModelSerializer):
    # Read from the raw column: the metric may have been deleted.
    metric = serializers.UUIDField(source="metric_id", read_only=True)

    class Meta:
        model = DailyEntry
        fields = [
            "id", "metric", "owner", "date", "actual_value",
            "is_achieved", "notes", "created_at", "updated_at",
        ]
        read_only_fields = fields


class DailyEntryWriteSerializer(serializers.Serializer):
    metric = serializers.UUIDField()
    date = serializers.DateField(required=False, allow_null=True)
    actual_value = serializers.DecimalField(max_digits=16, decimal_places=4)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# ────────────────────────────────────────────────────────────
# Rollups
# ────────────────────────────────────────────────────────────

class PeriodSerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=1900, max_value=9999, required=False)
    month = serializers.IntegerField(min_value=1, max_value=12, required=False)


class SyncRequestSerializer(PeriodSerializer):
    run_async = serializers.BooleanField(required=False, default=False)


class MonthlyRollupSerializer(serializers.Serializer):
    metric_id = serializers.UUIDField()
    year = serializers.IntegerField()
    month = serializers.IntegerField()
    total_actual = serializers.DecimalField(max_digits=18, decimal_places=4)
    days_recorded = serializers.IntegerField()
    days_achieved = serializers.IntegerField()
    achievement = serializers.SerializerMethodField()

    def get_achievement(self, rollup) -> str:
        return rollup.achievement.status


class WeeklyRollupSerializer(serializers.Serializer):
    metric_id = serializers.UUIDField()
    week_start = serializers.DateField()
    week_end = serializers.DateField()
    total_actual = serializers.DecimalField(max_digits=18, decimal_places=4)
    days_recorded = serializers.IntegerField()
    days_achieved = serializers.IntegerField()
    progress_percentage = serializers.IntegerField()


class YearlyRollupSerializer(serializers.Serializer):
    metric_id = serializers.UUIDField()
    year = serializers.IntegerField()
    total_actual = serializers.DecimalField(max_digits=18, decimal_places=4)
    days_recorded = serializers.IntegerField()
    days_achieved = serializers.IntegerField()
    months_at_standard = serializers.IntegerField()
    months = MonthlyRollupSerializer(many=True)
