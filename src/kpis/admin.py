"""Django admin for the kpis module."""
from django.contrib import admin

from kpis.ledger import DailyEntryLedger
from kpis.models import DailyEntry, MetricDefinition


@admin.register(MetricDefinition)
class MetricDefinitionAdmin(admin.ModelAdmin):
    list_display = (
        "name", "owner", "category", "type",
        "minimum_target", "standard_target", "stretch_target",
        "current_value", "value_synced_at",
    )
    list_filter = ("category", "type")
    search_fields = ("name", "owner__username", "owner__email")
    readonly_fields = ("current_value", "value_synced_at", "created_at", "updated_at")


@admin.register(DailyEntry)
class DailyEntryAdmin(admin.ModelAdmin):
    list_display = ("date", "metric_name", "owner", "actual_value", "is_achieved")
    list_filter = ("is_achieved", "date")
    search_fields = ("owner__username", "notes")
    readonly_fields = ("is_achieved", "created_at", "updated_at")
    ordering = ("-date",)

    def metric_name(self, obj):
        # Orphaned entries keep pointing at a deleted metric.
        metric = MetricDefinition.objects.filter(pk=obj.metric_id).only("name").first()
        return metric.name if metric else "-"
    metric_name.short_description = "Indicateur"

    def save_model(self, request, obj, form, change):
        metric = MetricDefinition.objects.filter(pk=obj.metric_id).first()
        if metric is not None:
            obj.is_achieved = DailyEntryLedger().is_achieved(metric, obj.actual_value, obj.date)
        super().save_model(request, obj, form, change)
