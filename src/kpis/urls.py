"""URL router for the kpis API (mounted under /api/v1/)."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from kpis import views

router = DefaultRouter()
router.register(r"kpi-metrics", views.MetricDefinitionViewSet, basename="kpi-metric")
router.register(r"kpi-entries", views.DailyEntryViewSet, basename="kpi-entry")
router.register(r"kpi-rollups", views.RollupViewSet, basename="kpi-rollup")

urlpatterns = [
    path("kpi-dashboard/", views.OwnerDashboardView.as_view(), name="kpi-dashboard"),
    path("kpi-dashboard/admin/", views.AdminOverviewView.as_view(), name="kpi-admin-overview"),
    path("", include(router.urls)),
]
