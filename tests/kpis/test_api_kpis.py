"""Tests for the kpis REST endpoints."""
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

import kpis.tasks as kpi_tasks
from kpis.exceptions import PersistenceError
from kpis.models import DailyEntry, MetricDefinition


@pytest.mark.django_db
class TestMetricEndpoints:
    def test_requires_authentication(self, api_client):
        response = api_client.get("/api/v1/kpi-metrics/")
        assert response.status_code == 403

    def test_create_derives_tiers(self, api_client, sales_user):
        api_client.force_authenticate(sales_user)

        response = api_client.post(
            "/api/v1/kpi-metrics/",
            {"type": "appointments", "standard_target": "20"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["minimum_target"] == "14.00"
        assert response.data["stretch_target"] == "26.00"
        assert response.data["owner"] == sales_user.pk

    def test_create_broken_ordering_is_400(self, api_client, sales_user):
        api_client.force_authenticate(sales_user)

        response = api_client.post(
            "/api/v1/kpi-metrics/",
            {"type": "closings", "standard_target": "5", "minimum_target": "9"},
            format="json",
        )

        assert response.status_code == 400
        assert not MetricDefinition.objects.exists()

    def test_list_only_own_metrics(self, api_client, definitions, sales_user, other_user, appointments):
        definitions.create(other_user.pk, {"type": "closings", "standard_target": 3})
        api_client.force_authenticate(sales_user)

        response = api_client.get("/api/v1/kpi-metrics/")

        assert response.status_code == 200
        assert [row["id"] for row in response.data["results"]] == [str(appointments.pk)]

    def test_non_staff_cannot_act_for_others(self, api_client, sales_user, other_user):
        api_client.force_authenticate(sales_user)
        response = api_client.get(f"/api/v1/kpi-metrics/?owner={other_user.pk}")
        assert response.status_code == 403

    def test_staff_lists_for_owner(self, api_client, admin_user, sales_user, appointments):
        api_client.force_authenticate(admin_user)
        response = api_client.get(f"/api/v1/kpi-metrics/?owner={sales_user.pk}")
        assert response.status_code == 200
        assert response.data["count"] == 1

    def test_patch_and_delete(self, api_client, sales_user, appointments):
        api_client.force_authenticate(sales_user)
        url = f"/api/v1/kpi-metrics/{appointments.pk}/"

        response = api_client.patch(url, {"name": "RDV"}, format="json")
        assert response.status_code == 200
        assert response.data["name"] == "RDV"

        response = api_client.patch(url, {"standard_target": "30"}, format="json")
        assert response.status_code == 400

        response = api_client.delete(url)
        assert response.status_code == 204
        assert not MetricDefinition.objects.filter(pk=appointments.pk).exists()

    def test_other_owner_metric_is_404(self, api_client, other_user, appointments):
        api_client.force_authenticate(other_user)
        response = api_client.patch(
            f"/api/v1/kpi-metrics/{appointments.pk}/", {"name": "x"}, format="json"
        )
        assert response.status_code == 404

    def test_assign_template(self, api_client, admin_user, sales_user):
        api_client.force_authenticate(admin_user)

        response = api_client.post(
            "/api/v1/kpi-metrics/assign-template/",
            {"owner": sales_user.pk, "metric_types": ["appointments", "contract_closings"]},
            format="json",
        )

        assert response.status_code == 200
        assert [row["type"] for row in response.data] == ["appointments", "contract_closings"]
        assert response.data[0]["minimum_target"] == "7.00"
        assert MetricDefinition.objects.filter(owner=sales_user).count() == 2


@pytest.mark.django_db
class TestEntryEndpoints:
    def test_upsert_and_list(self, api_client, sales_user, appointments):
        api_client.force_authenticate(sales_user)
        payload = {"metric": str(appointments.pk), "date": "2026-06-01", "actual_value": "0.5"}

        first = api_client.post("/api/v1/kpi-entries/", payload, format="json")
        second = api_client.post("/api/v1/kpi-entries/", payload, format="json")

        assert first.status_code == 200
        assert second.data["id"] == first.data["id"]
        assert first.data["is_achieved"] is True
        assert DailyEntry.objects.count() == 1

        response = api_client.get(
            f"/api/v1/kpi-entries/?metric={appointments.pk}&start=2026-06-01&end=2026-06-30"
        )
        assert response.data["count"] == 1

    def test_negative_value_is_400(self, api_client, sales_user, appointments):
        api_client.force_authenticate(sales_user)
        response = api_client.post(
            "/api/v1/kpi-entries/",
            {"metric": str(appointments.pk), "date": "2026-06-01", "actual_value": "-2"},
            format="json",
        )
        assert response.status_code == 400

    def test_unknown_metric_is_404(self, api_client, sales_user):
        api_client.force_authenticate(sales_user)
        response = api_client.post(
            "/api/v1/kpi-entries/",
            {"metric": str(uuid4()), "actual_value": "1"},
            format="json",
        )
        assert response.status_code == 404

    def test_foreign_metric_is_404(self, api_client, other_user, appointments):
        api_client.force_authenticate(other_user)
        response = api_client.post(
            "/api/v1/kpi-entries/",
            {"metric": str(appointments.pk), "actual_value": "1"},
            format="json",
        )
        assert response.status_code == 404

    def test_staff_writes_for_metric_owner(self, api_client, admin_user, sales_user, appointments):
        api_client.force_authenticate(admin_user)
        response = api_client.post(
            "/api/v1/kpi-entries/",
            {"metric": str(appointments.pk), "date": "2026-06-01", "actual_value": "1"},
            format="json",
        )
        assert response.status_code == 200
        assert response.data["owner"] == sales_user.pk


@pytest.mark.django_db
class TestRollupEndpoints:
    def test_monthly_list(self, api_client, ledger, sales_user, appointments):
        ledger.upsert_entry(appointments.pk, sales_user.pk, date(2026, 6, 1), 21)
        api_client.force_authenticate(sales_user)

        response = api_client.get("/api/v1/kpi-rollups/?year=2026&month=6")

        assert response.status_code == 200
        (row,) = response.data
        assert row["total_actual"] == "21.0000"
        assert row["days_recorded"] == 1
        assert row["achievement"] == "standard"

    def test_invalid_month_is_400(self, api_client, sales_user):
        api_client.force_authenticate(sales_user)
        response = api_client.get("/api/v1/kpi-rollups/?year=2026&month=13")
        assert response.status_code == 400

    def test_weekly_and_yearly(self, api_client, ledger, sales_user, appointments):
        ledger.upsert_entry(appointments.pk, sales_user.pk, date(2026, 6, 16), 5)
        api_client.force_authenticate(sales_user)

        weekly = api_client.get(
            f"/api/v1/kpi-rollups/weekly/?metric={appointments.pk}&date=2026-06-18"
        )
        yearly = api_client.get(f"/api/v1/kpi-rollups/yearly/?metric={appointments.pk}&year=2026")

        assert weekly.status_code == 200
        assert weekly.data["week_start"] == "2026-06-15"
        assert weekly.data["progress_percentage"] == 25
        assert yearly.status_code == 200
        assert len(yearly.data["months"]) == 12

    def test_sync(self, api_client, ledger, sales_user, appointments):
        ledger.upsert_entry(appointments.pk, sales_user.pk, date(2026, 6, 1), 12)
        api_client.force_authenticate(sales_user)

        response = api_client.post(
            "/api/v1/kpi-rollups/sync/", {"year": 2026, "month": 6}, format="json"
        )

        assert response.status_code == 200
        appointments.refresh_from_db()
        assert appointments.current_value == Decimal("12")

    def test_sync_async_queues_task(self, monkeypatch, api_client, sales_user, appointments):
        calls = []
        monkeypatch.setattr(kpi_tasks.sync_owner_month, "delay", lambda **kwargs: calls.append(kwargs))
        api_client.force_authenticate(sales_user)

        response = api_client.post(
            "/api/v1/kpi-rollups/sync/",
            {"year": 2026, "month": 6, "run_async": True},
            format="json",
        )

        assert response.status_code == 202
        assert calls == [{"owner_id": sales_user.pk, "year": 2026, "month": 6}]

    def test_sync_store_failure_is_503(self, monkeypatch, api_client, sales_user, appointments):
        def failing_sync(self, owner_id, year, month):
            raise PersistenceError("store down")

        monkeypatch.setattr("kpis.sync.ReconciliationSync.sync_rollup_to_definition", failing_sync)
        api_client.force_authenticate(sales_user)

        response = api_client.post(
            "/api/v1/kpi-rollups/sync/", {"year": 2026, "month": 6}, format="json"
        )

        assert response.status_code == 503


@pytest.mark.django_db
class TestDashboardEndpoints:
    def test_owner_dashboard(self, api_client, sales_user, appointments):
        api_client.force_authenticate(sales_user)

        response = api_client.get("/api/v1/kpi-dashboard/?year=2026&month=6")

        assert response.status_code == 200
        assert response.data["owner"]["name"] == "Hanako Sato"
        assert len(response.data["metrics"]) == 1

    def test_admin_overview_is_staff_only(self, api_client, sales_user):
        api_client.force_authenticate(sales_user)
        response = api_client.get("/api/v1/kpi-dashboard/admin/?type=appointments")
        assert response.status_code == 403

    def test_admin_overview(self, api_client, admin_user, sales_user, other_user, appointments):
        api_client.force_authenticate(admin_user)

        response = api_client.get(
            f"/api/v1/kpi-dashboard/admin/?type=appointments&owners={sales_user.pk},{other_user.pk}"
        )

        assert response.status_code == 200
        statuses = [row["achievement"] for row in response.data]
        assert statuses == ["below", "none"]

    def test_admin_overview_unknown_type(self, api_client, admin_user):
        api_client.force_authenticate(admin_user)
        response = api_client.get("/api/v1/kpi-dashboard/admin/?type=revenue")
        assert response.status_code == 400
