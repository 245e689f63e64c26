"""Pytest configuration and shared fixtures for recurbook tests."""

from datetime import date
from decimal import Decimal

import pytest
import yaml

from recurbook.lifecycle import RecurrenceFamilyManager
from recurbook.schema import (
    Appointment,
    GlobalConfig,
    RecurrenceFamily,
    ServiceTemplate,
    parse_rule,
)
from recurbook.service import RecurringService
from recurbook.store import InMemoryFamilyStore
from recurbook.types import AppointmentStatus, FamilyStatus

TODAY = date(2026, 10, 19)

# ============================================================================
# Model Builders
# ============================================================================


def make_template(
    address: str = "12 Elm St",
    price: Decimal = Decimal("120.00"),
    **kwargs,
) -> ServiceTemplate:
    """Create a ServiceTemplate with sensible defaults."""
    return ServiceTemplate(
        address=address,
        price=price,
        service_type=kwargs.get("service_type", "standard"),
        size=kwargs.get("size"),
        city_state_zip=kwargs.get("city_state_zip", "Springfield, IL 62701"),
        notes=kwargs.get("notes"),
    )


def make_appointment(
    appointment_id: int,
    date_: date,
    status: AppointmentStatus = AppointmentStatus.UNCONFIRMED,
    family_id: int = 1,
    **kwargs,
) -> Appointment:
    """Create an Appointment instance."""
    return Appointment(
        id=appointment_id,
        family_id=family_id,
        client_id=kwargs.get("client_id", 7),
        date=date_,
        time=kwargs.get("time", "09:00"),
        price=kwargs.get("price", Decimal("120.00")),
        address=kwargs.get("address", "12 Elm St"),
        status=status,
        notes=kwargs.get("notes"),
    )


def make_family(
    family_id: int = 1,
    rule=None,
    anchor_date: date = date(2026, 1, 5),
    appointments: list[Appointment] = None,
    status: FamilyStatus = FamilyStatus.ACTIVE,
    **kwargs,
) -> RecurrenceFamily:
    """Create a RecurrenceFamily; rule may be a dict or a rule model (default weekly)."""
    appointments = appointments or []
    pending = next(
        (a for a in appointments if a.status == AppointmentStatus.UNCONFIRMED),
        None,
    )
    return RecurrenceFamily(
        id=family_id,
        status=status,
        rule=parse_rule(rule or {"type": "weekly"}),
        template=kwargs.get("template", make_template()),
        client_id=kwargs.get("client_id", 7),
        admin_id=kwargs.get("admin_id"),
        time=kwargs.get("time", "09:00"),
        anchor_date=anchor_date,
        next_appointment_date=pending.date if pending else None,
        created_on=kwargs.get("created_on", anchor_date),
        appointments=appointments,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def sample_family():
    """Fixture providing a family builder function."""
    return make_family


@pytest.fixture
def sample_template():
    """Fixture providing a template builder function."""
    return make_template


@pytest.fixture
def clock():
    """Fixture providing a fixed clock."""
    return lambda: TODAY


@pytest.fixture
def store():
    """Fixture providing an empty in-memory store."""
    return InMemoryFamilyStore()


@pytest.fixture
def manager(store, clock):
    """Fixture providing a lifecycle manager over the in-memory store."""
    return RecurrenceFamilyManager(store, clock=clock)


@pytest.fixture
def service(store, manager):
    """Fixture providing a RecurringService sharing the manager's store and clock."""
    return RecurringService(store, manager=manager, config=GlobalConfig())


@pytest.fixture
def temp_data_dir(tmp_path):
    """Fixture providing a temporary data directory with a _config.yaml."""
    data_dir = tmp_path / "recurring"
    data_dir.mkdir()

    config = {
        "min_projection_steps": 30,
        "max_occurrences_per_month": 6,
        "stop_missed_on_sync": True,
        "default_time": "08:30",
        "currency": "USD",
    }
    with open(data_dir / "_config.yaml", "w") as f:
        yaml.dump(config, f)

    return data_dir


# ============================================================================
# Assertion Helpers
# ============================================================================


def pending_instances(family: RecurrenceFamily) -> list[Appointment]:
    """Return every unconfirmed instance of a family."""
    return [a for a in family.appointments if a.status == AppointmentStatus.UNCONFIRMED]


def assert_single_pending(family: RecurrenceFamily, expected_date: date):
    """Assert a family has exactly one pending instance, on expected_date."""
    pending = pending_instances(family)
    assert len(pending) == 1, f"expected one pending instance, got {pending}"
    assert pending[0].date == expected_date
    assert family.next_appointment_date == expected_date
