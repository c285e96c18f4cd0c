"""Tests for MetricDefinitionStore."""
from decimal import Decimal
from uuid import uuid4

import pytest

from kpis.exceptions import InvariantViolation, NotFoundError, ValidationError
from kpis.models import MetricDefinition


@pytest.mark.django_db
class TestCreate:
    def test_derives_omitted_tiers(self, appointments):
        assert appointments.minimum_target == Decimal("14")
        assert appointments.standard_target == Decimal("20")
        assert appointments.stretch_target == Decimal("26")

    def test_fills_descriptive_fields_from_catalog(self, appointments):
        assert appointments.category == "sales"
        assert appointments.unit == "件"
        assert appointments.name == "Rendez-vous"
        assert appointments.current_value == 0

    def test_keeps_supplied_tiers(self, closings):
        closings.refresh_from_db()
        assert (closings.minimum_target, closings.standard_target, closings.stretch_target) == (
            Decimal("2"), Decimal("5"), Decimal("8"),
        )

    def test_requires_standard_target(self, definitions, sales_user):
        with pytest.raises(ValidationError):
            definitions.create(sales_user.pk, {"type": "closings"})

    def test_rejects_empty_unit(self, definitions, sales_user):
        with pytest.raises(ValidationError):
            definitions.create(
                sales_user.pk, {"type": "closings", "unit": "  ", "standard_target": 5}
            )
        assert not MetricDefinition.objects.exists()

    def test_rejects_negative_target(self, definitions, sales_user):
        with pytest.raises(ValidationError):
            definitions.create(
                sales_user.pk,
                {"type": "closings", "standard_target": 5, "minimum_target": -1},
            )

    def test_rejects_broken_ordering(self, definitions, sales_user):
        with pytest.raises(InvariantViolation):
            definitions.create(
                sales_user.pk,
                {"type": "closings", "standard_target": 5, "minimum_target": 6},
            )

    def test_rejects_unknown_type(self, definitions, sales_user):
        with pytest.raises(ValidationError):
            definitions.create(sales_user.pk, {"type": "revenue", "standard_target": 5})

    def test_rejects_duplicate_type_per_owner(self, definitions, sales_user, appointments):
        with pytest.raises(ValidationError):
            definitions.create(sales_user.pk, {"type": "appointments", "standard_target": 3})

    def test_same_type_for_another_owner(self, definitions, other_user, appointments):
        metric = definitions.create(other_user.pk, {"type": "appointments", "standard_target": 3})
        assert metric.pk != appointments.pk


@pytest.mark.django_db
class TestUpdate:
    def test_merges_fields(self, definitions, appointments):
        updated = definitions.update(appointments.pk, {"name": "RDV clients"})
        assert updated.name == "RDV clients"
        assert updated.standard_target == Decimal("20")

    def test_rejects_broken_ordering(self, definitions, appointments):
        with pytest.raises(InvariantViolation):
            definitions.update(appointments.pk, {"standard_target": Decimal("30")})
        appointments.refresh_from_db()
        assert appointments.standard_target == Decimal("20")

    def test_unknown_metric(self, definitions):
        with pytest.raises(NotFoundError):
            definitions.update(uuid4(), {"name": "x"})

    def test_rejects_non_updatable_field(self, definitions, appointments, other_user):
        with pytest.raises(ValidationError):
            definitions.update(appointments.pk, {"owner_id": other_user.pk})

    def test_rejects_type_clash(self, definitions, appointments, closings):
        with pytest.raises(ValidationError):
            definitions.update(closings.pk, {"type": "appointments"})


@pytest.mark.django_db
class TestReadsAndDelete:
    def test_get_and_find(self, definitions, appointments):
        assert definitions.get(appointments.pk) == appointments
        assert definitions.find(uuid4()) is None
        assert definitions.find("not-a-uuid") is None
        with pytest.raises(NotFoundError):
            definitions.get(uuid4())

    def test_list_by_owner_and_category(self, definitions, sales_user, other_user, appointments, closings):
        definitions.create(other_user.pk, {"type": "closings", "standard_target": 1})
        assert {m.pk for m in definitions.list_by_owner(sales_user.pk)} == {appointments.pk, closings.pk}
        assert definitions.list_by_owner_and_category(sales_user.pk, "development") == []
        assert len(definitions.list_by_owner_and_category(sales_user.pk, "sales")) == 2

    def test_delete(self, definitions, appointments):
        assert definitions.delete(appointments.pk) is True
        assert definitions.delete(appointments.pk) is False
        assert definitions.find(appointments.pk) is None


@pytest.mark.django_db
class TestAssignTemplate:
    def test_default_tiers(self, definitions, sales_user):
        (metric,) = definitions.assign_template(sales_user.pk, ["appointments"])
        assert metric.standard_target == Decimal("10")
        assert metric.minimum_target == Decimal("7")
        assert metric.stretch_target == Decimal("13")
        assert metric.unit == "件"

    def test_overwrites_custom_tiers_keeps_identity(self, definitions, sales_user, closings):
        MetricDefinition.objects.filter(pk=closings.pk).update(current_value=Decimal("4"))

        written = definitions.assign_template(sales_user.pk, ["closings", "contract_closings"])

        assert [m.type for m in written] == ["closings", "contract_closings"]
        closings.refresh_from_db()
        assert written[0].pk == closings.pk
        assert closings.standard_target == Decimal("10")
        assert closings.minimum_target == Decimal("7")
        assert closings.current_value == Decimal("4")
        assert written[1].category == "development"

    def test_unknown_type_writes_nothing(self, definitions, sales_user):
        with pytest.raises(ValidationError):
            definitions.assign_template(sales_user.pk, ["appointments", "bogus"])
        assert not MetricDefinition.objects.exists()

    def test_duplicates_collapsed(self, definitions, sales_user):
        written = definitions.assign_template(sales_user.pk, ["closings", "closings"])
        assert len(written) == 1
        assert MetricDefinition.objects.count() == 1
