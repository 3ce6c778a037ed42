"""
Pytest configuration and shared fixtures.

Adds the project directory to the Python path so tests can import domain,
repositories and services, and wires the services against in-memory storage
with a fixed clock.
"""

import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest

# Add the unit-sales-platform directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.actor import Actor, Role  # noqa: E402
from domain.clock import FixedClock  # noqa: E402
from domain.lead import Lead  # noqa: E402
from domain.payment_schedule import Installment, PaymentSchedule  # noqa: E402
from domain.project import Project, TaxRates, Tower  # noqa: E402
from domain.unit import Unit  # noqa: E402
from services.business_rules import StaticBusinessRules, TenantBusinessRules  # noqa: E402
from services.container import Repositories, Services, build_services  # noqa: E402

TENANT_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-0000000000b2")
PROJECT_ID = UUID("00000000-0000-0000-0000-000000000101")
TOWER_ID = UUID("00000000-0000-0000-0000-000000000201")
UNIT_ID = UUID("00000000-0000-0000-0000-000000000301")
SECOND_UNIT_ID = UUID("00000000-0000-0000-0000-000000000302")
LEAD_ID = UUID("00000000-0000-0000-0000-000000000401")
SECOND_LEAD_ID = UUID("00000000-0000-0000-0000-000000000402")


def make_unit(unit_id: UUID = UNIT_ID, **overrides) -> Unit:
    """A 1000 sq.ft unit at 5000 per sq.ft (base 5,000,000)."""

    values = dict(
        unit_id=unit_id,
        tenant_id=TENANT_ID,
        project_id=PROJECT_ID,
        tower_id=TOWER_ID,
        number="A-101",
        floor=1,
        unit_type="2BHK",
        carpet_area=Decimal("750"),
        built_up_area=Decimal("900"),
        super_built_up_area=Decimal("1000"),
        base_price=Decimal("5000"),
    )
    values.update(overrides)
    return Unit(**values)


def make_schedule(total: str, *percentages: str) -> PaymentSchedule:
    """A percentage-based schedule for an arbitrary booking, amounts already derived."""

    return PaymentSchedule(
        schedule_id=uuid4(),
        tenant_id=TENANT_ID,
        booking_id=uuid4(),
        name="Construction linked",
        total_amount=Decimal(total),
        installments=tuple(
            Installment(name=f"Installment {i + 1}", amount=Decimal("0"), percentage=Decimal(p))
            for i, p in enumerate(percentages)
        ),
        created_by=uuid4(),
        created_at=datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc),
    ).recalculate_amounts()


@dataclass
class Actors:
    principal: Actor
    business_head: Actor
    sales_director: Actor
    agent: Actor
    outsider: Actor


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def rules() -> TenantBusinessRules:
    return TenantBusinessRules()


@pytest.fixture
def services(clock: FixedClock, rules: TenantBusinessRules) -> Services:
    """Services over in-memory storage seeded with one project, tower, two units and two leads."""

    repositories = Repositories.in_memory()
    repositories.projects.add_project(
        Project(project_id=PROJECT_ID, tenant_id=TENANT_ID, name="Lakeside", tax_rates=TaxRates())
    )
    repositories.projects.add_tower(
        Tower(tower_id=TOWER_ID, tenant_id=TENANT_ID, project_id=PROJECT_ID, name="Tower A")
    )
    repositories.units.add(make_unit())
    repositories.units.add(make_unit(SECOND_UNIT_ID, number="A-102"))
    repositories.leads.add(
        Lead(lead_id=LEAD_ID, tenant_id=TENANT_ID, full_name="Asha Rao", email="asha@example.com")
    )
    repositories.leads.add(Lead(lead_id=SECOND_LEAD_ID, tenant_id=TENANT_ID, full_name="Vikram Shah"))
    return build_services(repositories, clock=clock, rules=StaticBusinessRules(rules))


@pytest.fixture
def actors() -> Actors:
    return Actors(
        principal=Actor(UUID("00000000-0000-0000-0000-000000000501"), TENANT_ID, Role.PRINCIPAL),
        business_head=Actor(UUID("00000000-0000-0000-0000-000000000502"), TENANT_ID, Role.BUSINESS_HEAD),
        sales_director=Actor(UUID("00000000-0000-0000-0000-000000000503"), TENANT_ID, Role.SALES_DIRECTOR),
        agent=Actor(
            UUID("00000000-0000-0000-0000-000000000504"),
            TENANT_ID,
            Role.SENIOR_AGENT,
            max_discount_percentage=Decimal("10"),
        ),
        outsider=Actor(UUID("00000000-0000-0000-0000-000000000599"), OTHER_TENANT_ID, Role.PRINCIPAL),
    )
