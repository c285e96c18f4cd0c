"""App config for the kpis module."""
from django.apps import AppConfig


class KpisConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "kpis"
    verbose_name = "Indicateurs KPI"

    def ready(self):
        import kpis.signals  # noqa: F401
