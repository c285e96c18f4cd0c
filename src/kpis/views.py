"""API views for the kpis module."""
from __future__ import annotations

import logging

import django_filters
from django.contrib.auth import get_user_model
from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import (
    APIException,
    NotFound,
    PermissionDenied,
    ValidationError as APIValidationError,
)
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from kpis.clock import SystemClock
from kpis.dashboard import build_admin_overview, build_owner_dashboard
from kpis.definitions import MetricDefinitionStore
from kpis.exceptions import (
    InvariantViolation,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from kpis.ledger import DailyEntryLedger, parse_day
from kpis.models import DailyEntry, MetricDefinition, MetricType
from kpis.rollups import RollupEngine
from kpis.serializers import (
    AssignTemplateSerializer,
    DailyEntrySerializer,
    DailyEntryWriteSerializer,
    MetricDefinitionSerializer,
    MetricDefinitionWriteSerializer,
    MonthlyRollupSerializer,
    PeriodSerializer,
    SyncRequestSerializer,
    WeeklyRollupSerializer,
    YearlyRollupSerializer,
)
from kpis.sync import ReconciliationSync

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────
# Error mapping
# ────────────────────────────────────────────────────────────

class StoreUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Stockage indisponible, reessayez plus tard."
    default_code = "store_unavailable"


def kpi_exception_handler(exc, context):
    """Translate engine errors into DRF errors, then defer to DRF."""
    if isinstance(exc, (ValidationError, InvariantViolation)):
        exc = APIValidationError({"detail": str(exc)})
    elif isinstance(exc, NotFoundError):
        exc = NotFound(str(exc))
    elif isinstance(exc, PersistenceError):
        logger.error("KPI store failure: %s", exc)
        exc = StoreUnavailable()
    return exception_handler(exc, context)


# ────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────

def _resolve_owner(request) -> int:
    """Owner acted upon: the caller, or ``owner`` when the caller is staff."""
    owner = request.query_params.get("owner")
    if owner is None and isinstance(request.data, dict):
        owner = request.data.get("owner")
    if owner in (None, ""):
        return request.user.pk
    if str(owner) == str(request.user.pk):
        return request.user.pk
    if not request.user.is_staff:
        raise PermissionDenied("Vous ne pouvez agir que sur vos propres indicateurs.")
    user = get_user_model().objects.filter(pk=owner).first() if str(owner).isdigit() else None
    if user is None:
        raise NotFound("Utilisateur introuvable.")
    return user.pk


def _period(request, data=None) -> tuple[int, int]:
    serializer = PeriodSerializer(data=request.query_params if data is None else data)
    serializer.is_valid(raise_exception=True)
    today = SystemClock().today()
    return (
        serializer.validated_data.get("year", today.year),
        serializer.validated_data.get("month", today.month),
    )


def _visible_metric(request, metric_id) -> MetricDefinition:
    """Metric readable by the caller, hidden behind a 404 otherwise."""
    metric = MetricDefinitionStore().get(metric_id)
    if not request.user.is_staff and metric.owner_id != request.user.pk:
        raise NotFound(f"Indicateur introuvable: {metric_id}.")
    return metric


# ────────────────────────────────────────────────────────────
# Metric definitions
# ────────────────────────────────────────────────────────────

class MetricDefinitionViewSet(viewsets.ModelViewSet):
    """Metrics of the caller (or of ``?owner=`` for staff)."""
    serializer_class = MetricDefinitionSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [django_filters.rest_framework.DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["category", "type"]
    ordering_fields = ["category", "type", "created_at"]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_queryset(self):
        qs = MetricDefinition.objects.all()
        if self.action == "list":
            return qs.filter(owner_id=_resolve_owner(self.request))
        if self.request.user.is_staff:
            return qs
        return qs.filter(owner=self.request.user)

    def create(self, request, *args, **kwargs):
        owner_id = _resolve_owner(request)
        serializer = MetricDefinitionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        metric = MetricDefinitionStore().create(owner_id, serializer.validated_data)
        return Response(MetricDefinitionSerializer(metric).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        metric = self.get_object()
        serializer = MetricDefinitionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        metric = MetricDefinitionStore().update(metric.pk, serializer.validated_data)
        return Response(MetricDefinitionSerializer(metric).data)

    def destroy(self, request, *args, **kwargs):
        metric = self.get_object()
        MetricDefinitionStore().delete(metric.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["post"], url_path="assign-template")
    def assign_template(self, request):
        owner_id = _resolve_owner(request)
        serializer = AssignTemplateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        metrics = MetricDefinitionStore().assign_template(
            owner_id, serializer.validated_data["metric_types"]
        )
        return Response(MetricDefinitionSerializer(metrics, many=True).data)


# ────────────────────────────────────────────────────────────
# Daily entries
# ────────────────────────────────────────────────────────────

class DailyEntryFilter(django_filters.FilterSet):
    metric = django_filters.UUIDFilter(field_name="metric_id")
    start = django_filters.DateFilter(field_name="date", lookup_expr="gte")
    end = django_filters.DateFilter(field_name="date", lookup_expr="lte")
    is_achieved = django_filters.BooleanFilter()

    class Meta:
        model = DailyEntry
        fields = ["metric", "start", "end", "is_achieved"]


class DailyEntryViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Ledger entries; POST upserts on (metric, date)."""
    serializer_class = DailyEntrySerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [django_filters.rest_framework.DjangoFilterBackend]
    filterset_class = DailyEntryFilter

    def get_queryset(self):
        qs = DailyEntry.objects.order_by("date", "metric_id")
        if self.action == "list":
            return qs.filter(owner_id=_resolve_owner(self.request))
        if self.request.user.is_staff:
            return qs
        return qs.filter(owner=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = DailyEntryWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        metric = _visible_metric(request, data["metric"])
        entry = DailyEntryLedger().upsert_entry(
            metric.pk,
            metric.owner_id,
            data.get("date"),
            data["actual_value"],
            data.get("notes"),
        )
        return Response(DailyEntrySerializer(entry).data, status=status.HTTP_200_OK)


# ────────────────────────────────────────────────────────────
# Rollups & reconciliation
# ────────────────────────────────────────────────────────────

class RollupViewSet(viewsets.ViewSet):
    """
    GET  /api/v1/kpi-rollups/?year=&month=          monthly rollups of the owner
    GET  /api/v1/kpi-rollups/weekly/?metric=&date=  Monday-start week
    GET  /api/v1/kpi-rollups/yearly/?metric=&year=
    POST /api/v1/kpi-rollups/sync/                  write totals into current values
    """
    permission_classes = [permissions.IsAuthenticated]

    def list(self, request):
        owner_id = _resolve_owner(request)
        year, month = _period(request)
        rollups = RollupEngine().compute_all(owner_id, year, month)
        return Response(MonthlyRollupSerializer(list(rollups.values()), many=True).data)

    @action(detail=False, methods=["get"])
    def weekly(self, request):
        metric = _visible_metric(request, request.query_params.get("metric"))
        raw_day = request.query_params.get("date")
        day = parse_day(raw_day) if raw_day else SystemClock().today()
        rollup = RollupEngine().compute_weekly_rollup(metric.pk, day)
        return Response(WeeklyRollupSerializer(rollup).data)

    @action(detail=False, methods=["get"])
    def yearly(self, request):
        metric = _visible_metric(request, request.query_params.get("metric"))
        year, _month = _period(request)
        rollup = RollupEngine().compute_yearly_rollup(metric.pk, year)
        return Response(YearlyRollupSerializer(rollup).data)

    @action(detail=False, methods=["post"])
    def sync(self, request):
        owner_id = _resolve_owner(request)
        serializer = SyncRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        year, month = _period(request, data=request.data)

        if serializer.validated_data["run_async"]:
            from kpis.tasks import sync_owner_month

            sync_owner_month.delay(owner_id=owner_id, year=year, month=month)
            return Response(
                {"queued": True, "owner": owner_id, "year": year, "month": month},
                status=status.HTTP_202_ACCEPTED,
            )

        metrics = ReconciliationSync().sync_rollup_to_definition(owner_id, year, month)
        return Response(MetricDefinitionSerializer(metrics, many=True).data)


# ────────────────────────────────────────────────────────────
# Dashboards
# ────────────────────────────────────────────────────────────

class OwnerDashboardView(APIView):
    """
    GET /api/v1/kpi-dashboard/?year=YYYY&month=MM
    Every metric of the owner with its monthly rollup and completion ratios.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        owner_id = _resolve_owner(request)
        year, month = _period(request)
        return Response(build_owner_dashboard(owner_id, year, month))


class AdminOverviewView(APIView):
    """
    GET /api/v1/kpi-dashboard/admin/?type=appointments&owners=1,2
    One row per owner for the selected KPI type. Staff only.
    """
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        metric_type = request.query_params.get("type", MetricType.APPOINTMENTS)
        if metric_type not in MetricType.values:
            raise APIValidationError({"type": f"Type de KPI inconnu ({metric_type!r})."})

        raw_owners = request.query_params.get("owners")
        if raw_owners:
            try:
                owner_ids = [int(value) for value in raw_owners.split(",") if value.strip()]
            except ValueError:
                raise APIValidationError({"owners": "Liste d'identifiants invalide."}) from None
        else:
            owner_ids = list(
                get_user_model().objects.filter(is_active=True)
                .order_by("pk").values_list("pk", flat=True)
            )
        return Response(build_admin_overview(owner_ids, metric_type))
