"""Shared fixtures for all tests."""
from datetime import date
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from kpis.clock import FixedClock
from kpis.definitions import MetricDefinitionStore
from kpis.ledger import DailyEntryLedger
from kpis.rollups import RollupEngine

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        username="admin",
        email="admin@test.com",
        password="TestPass123!",
        first_name="Admin",
        last_name="User",
        is_staff=True,
    )


@pytest.fixture
def sales_user(db):
    return User.objects.create_user(
        username="sales",
        email="sales@test.com",
        password="TestPass123!",
        first_name="Hanako",
        last_name="Sato",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        username="other",
        email="other@test.com",
        password="TestPass123!",
    )


@pytest.fixture
def clock():
    # June 2026 has 30 days.
    return FixedClock(date(2026, 6, 15))


@pytest.fixture
def definitions(db):
    return MetricDefinitionStore(default_standard_target=10)


@pytest.fixture
def ledger(definitions, clock):
    return DailyEntryLedger(definitions=definitions, clock=clock)


@pytest.fixture
def rollups(definitions, ledger):
    return RollupEngine(ledger=ledger, definitions=definitions)


@pytest.fixture
def appointments(definitions, sales_user):
    """Standard target 20, so tiers derive to 14 / 20 / 26."""
    return definitions.create(
        sales_user.pk,
        {"type": "appointments", "standard_target": Decimal("20")},
    )


@pytest.fixture
def closings(definitions, sales_user):
    return definitions.create(
        sales_user.pk,
        {
            "type": "closings",
            "minimum_target": Decimal("2"),
            "standard_target": Decimal("5"),
            "stretch_target": Decimal("8"),
        },
    )
