"""Tests for the kpis admin and model-level validation."""
from datetime import date
from decimal import Decimal

import pytest
from django.contrib.admin.sites import site
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

from kpis.models import DailyEntry, MetricDefinition


@pytest.fixture
def superuser(db):
    return get_user_model().objects.create_superuser(
        username="root",
        email="root@test.com",
        password="TestPass123!",
    )


def _metric_form(rf, superuser, metric, **overrides):
    request = rf.get("/")
    request.user = superuser
    form_class = site._registry[MetricDefinition].get_form(request, metric)
    data = {
        "owner": metric.owner_id,
        "category": metric.category,
        "type": metric.type,
        "name": metric.name,
        "unit": metric.unit,
        "minimum_target": metric.minimum_target,
        "standard_target": metric.standard_target,
        "stretch_target": metric.stretch_target,
    }
    data.update(overrides)
    return form_class(data=data, instance=metric)


@pytest.mark.django_db
class TestMetricDefinitionAdmin:
    def test_rejects_broken_tier_ordering(self, rf, superuser, appointments):
        form = _metric_form(
            rf, superuser, appointments,
            minimum_target="50", standard_target="20", stretch_target="5",
        )

        assert not form.is_valid()
        assert "__all__" in form.errors
        appointments.refresh_from_db()
        assert appointments.minimum_target == Decimal("14")

    def test_accepts_ordered_tiers(self, rf, superuser, appointments):
        form = _metric_form(rf, superuser, appointments, minimum_target="10")
        assert form.is_valid(), form.errors

    def test_full_clean_maps_invariant_error(self, appointments):
        appointments.stretch_target = Decimal("1")
        with pytest.raises(ValidationError):
            appointments.full_clean()


@pytest.mark.django_db
class TestDailyEntryAdmin:
    def test_save_recomputes_achievement(self, rf, superuser, ledger, sales_user, appointments):
        entry = ledger.upsert_entry(appointments.pk, sales_user.pk, date(2026, 6, 1), "0.1")
        assert entry.is_achieved is False
        request = rf.post("/")
        request.user = superuser

        entry.actual_value = Decimal("0.5")
        site._registry[DailyEntry].save_model(request, entry, form=None, change=True)

        entry.refresh_from_db()
        assert entry.is_achieved is True

    def test_owner_must_match_metric(self, ledger, sales_user, other_user, appointments):
        entry = ledger.upsert_entry(appointments.pk, sales_user.pk, date(2026, 6, 1), 1)
        entry.owner = other_user

        with pytest.raises(ValidationError):
            entry.full_clean()
