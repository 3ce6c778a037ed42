"""
Tests for `domain/payment_schedule.py` and `services/payment_schedule_service.py`.

Covers schedule rules:
- Installment amounts reconcile with the total after every recalculation.
- Payments never exceed the amount due and are never double-counted.
- Material edits and edits to paid installments go through approval; a
  pending edit is ratified on approval and rolled back on rejection.
- A pending change holds the installments it touched against further edits
  and payments, and installment status follows the amount after any change.
- Due dates follow each installment's trigger.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.approval import ApprovalAction
from domain.errors import ConflictError, ValidationError
from domain.payment_schedule import (
    DueTrigger,
    Installment,
    InstallmentStatus,
    OffsetUnit,
    PaymentSchedule,
    Ratification,
    TriggerOffset,
)
from domain.payment_schedule_template import TemplateInstallment, build_installments
from services.payment_schedule_service import InstallmentChanges

from conftest import LEAD_ID, PROJECT_ID, TENANT_ID, UNIT_ID, make_schedule

CREATED_AT = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _amounts(schedule: PaymentSchedule) -> list:
    return [inst.amount for inst in schedule.installments]


@pytest.fixture
def stored(services):
    """A 40/60 schedule over 1,000,000 saved in the schedule repository."""

    schedule = make_schedule("1000000", "40", "60")
    services.repositories.schedules.add(schedule)
    return schedule


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------


def test_percentages_derive_amounts_from_total() -> None:
    schedule = make_schedule("1000000", "40", "60")

    assert _amounts(schedule) == [Decimal("400000.00"), Decimal("600000.00")]
    assert schedule.allocated_amount() == schedule.total_amount


def test_rounding_residue_lands_on_last_installment() -> None:
    schedule = make_schedule("100.01", "50", "50")

    assert _amounts(schedule) == [Decimal("50.01"), Decimal("50.00")]
    assert schedule.allocated_amount() == Decimal("100.01")


def test_recalculation_is_idempotent() -> None:
    schedule = make_schedule("1234567.89", "10", "15", "25", "50")

    assert schedule.recalculate_amounts() == schedule
    assert schedule.allocated_amount() == Decimal("1234567.89")


def test_fixed_amounts_keep_their_amount_and_refresh_percentage() -> None:
    installments = build_installments(
        (
            TemplateInstallment("Token", amount=Decimal("100000")),
            TemplateInstallment("Balance", percentage=Decimal("90")),
        ),
        Decimal("1000000"),
    )

    assert installments[0].percentage == Decimal("10")
    assert not installments[0].percentage_based
    assert installments[1].amount == Decimal("900000.00")


def test_template_percentages_must_not_exceed_hundred() -> None:
    with pytest.raises(ValidationError):
        build_installments(
            (
                TemplateInstallment("A", percentage=Decimal("60")),
                TemplateInstallment("B", percentage=Decimal("50")),
            ),
            Decimal("1000000"),
        )


def test_template_below_hundred_needs_fixed_amounts() -> None:
    with pytest.raises(ValidationError):
        build_installments(
            (TemplateInstallment("A", percentage=Decimal("60")),),
            Decimal("1000000"),
        )


def test_template_installment_needs_exactly_one_of_amount_or_percentage() -> None:
    with pytest.raises(ValidationError):
        TemplateInstallment("A").validate()
    with pytest.raises(ValidationError):
        TemplateInstallment("A", percentage=Decimal("10"), amount=Decimal("5")).validate()
    with pytest.raises(ValidationError):
        TemplateInstallment(
            "A", percentage=Decimal("10"), due_trigger=DueTrigger.CONSTRUCTION_MILESTONE
        ).validate()


# ---------------------------------------------------------------------------
# Total changes
# ---------------------------------------------------------------------------


def test_total_change_rescales_installments_and_needs_approval(services, actors, stored) -> None:
    outcome = services.schedules.update_total_amount(
        stored.schedule_id, Decimal("1200000"), actors.agent, reason="revised price"
    )

    assert outcome.approval_required
    assert _amounts(outcome.schedule) == [Decimal("480000.00"), Decimal("720000.00")]
    assert outcome.schedule.change_history[-1].ratification is Ratification.PENDING


def test_rejected_total_change_restores_previous_amounts(services, actors, stored) -> None:
    outcome = services.schedules.update_total_amount(stored.schedule_id, Decimal("1200000"), actors.agent)

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    schedule = services.schedules.get_schedule(stored.schedule_id, actors.agent)
    assert schedule.total_amount == Decimal("1000000")
    assert _amounts(schedule) == [Decimal("400000.00"), Decimal("600000.00")]
    assert schedule.change_history[-1].ratification is Ratification.REVERTED


def test_small_total_change_applies_without_approval(services, actors, stored) -> None:
    outcome = services.schedules.update_total_amount(stored.schedule_id, Decimal("1005000"), actors.agent)

    assert not outcome.approval_required
    assert outcome.schedule.allocated_amount() == Decimal("1005000.00")
    assert outcome.schedule.change_history[-1].ratification is Ratification.NOT_REQUIRED


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def test_partial_then_full_payment(services, actors, stored) -> None:
    partial = services.schedules.record_payment(
        stored.schedule_id, 0, Decimal("150000"), "bank_transfer", actors.agent, reference="UTR-1"
    )
    assert partial.installments[0].status is InstallmentStatus.PARTIALLY_PAID
    assert partial.installments[0].remaining_due == Decimal("250000.00")

    paid = services.schedules.record_payment(stored.schedule_id, 0, Decimal("250000"), "cheque", actors.agent)
    assert paid.installments[0].status is InstallmentStatus.PAID
    assert paid.installments[0].amount_paid == Decimal("400000.00")
    assert paid.installments[0].payment_method == "cheque"


def test_overpayment_is_rejected_and_nothing_is_recorded(services, actors, stored) -> None:
    services.schedules.record_payment(stored.schedule_id, 0, Decimal("400000"), "cheque", actors.agent)

    with pytest.raises(ValidationError):
        services.schedules.record_payment(stored.schedule_id, 0, Decimal("1"), "cheque", actors.agent)
    with pytest.raises(ValidationError):
        services.schedules.record_payment(stored.schedule_id, 1, Decimal("0"), "cheque", actors.agent)

    schedule = services.schedules.get_schedule(stored.schedule_id, actors.agent)
    assert schedule.installments[0].amount_paid == Decimal("400000.00")
    assert schedule.installments[1].amount_paid == Decimal("0")


def test_total_cannot_drop_below_paid_amounts(services, actors, stored) -> None:
    services.schedules.record_payment(stored.schedule_id, 0, Decimal("400000"), "cheque", actors.agent)

    with pytest.raises(ValidationError):
        services.schedules.update_total_amount(stored.schedule_id, Decimal("500000"), actors.principal)


# ---------------------------------------------------------------------------
# Installment edits
# ---------------------------------------------------------------------------


def test_small_edit_applies_without_approval(services, actors, stored) -> None:
    outcome = services.schedules.update_installment(
        stored.schedule_id, 0, InstallmentChanges(amount=Decimal("405000")), actors.agent
    )

    assert not outcome.approval_required
    assert outcome.schedule.installments[0].amount == Decimal("405000.00")
    assert outcome.schedule.change_history[-1].ratification is Ratification.NOT_REQUIRED


def test_approved_edit_is_ratified(services, actors, stored) -> None:
    outcome = services.schedules.update_installment(
        stored.schedule_id,
        0,
        InstallmentChanges(amount=Decimal("450000")),
        actors.agent,
        reason="customer request",
    )
    assert outcome.approval_required
    assert outcome.schedule.installments[0].amount == Decimal("450000.00")

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.APPROVE, actors.sales_director)

    schedule = services.schedules.get_schedule(stored.schedule_id, actors.agent)
    entry = schedule.change_history[-1]
    assert schedule.installments[0].amount == Decimal("450000.00")
    assert entry.ratification is Ratification.RATIFIED
    assert entry.previous_values.amount == Decimal("400000.00")
    assert entry.new_values.amount == Decimal("450000.00")
    assert entry.reason == "customer request"


def test_rejected_edit_is_reverted(services, actors, stored) -> None:
    outcome = services.schedules.update_installment(
        stored.schedule_id,
        0,
        InstallmentChanges(percentage=Decimal("50"), due_date=date(2025, 3, 1)),
        actors.agent,
    )

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    schedule = services.schedules.get_schedule(stored.schedule_id, actors.agent)
    assert schedule.installments[0].amount == Decimal("400000.00")
    assert schedule.installments[0].percentage == Decimal("40")
    assert schedule.installments[0].due_date is None
    assert schedule.change_history[-1].ratification is Ratification.REVERTED


def test_rejected_edit_reverts_redistribution(services, actors) -> None:
    schedule = make_schedule("1000000", "20", "30", "50")
    services.repositories.schedules.add(schedule)

    outcome = services.schedules.update_installment(
        schedule.schedule_id,
        0,
        InstallmentChanges(amount=Decimal("250000")),
        actors.agent,
        redistribute_remaining=True,
    )
    assert _amounts(outcome.schedule) == [
        Decimal("250000.00"),
        Decimal("281250.00"),
        Decimal("468750.00"),
    ]
    assert outcome.schedule.allocated_amount() == Decimal("1000000.00")

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    reverted = services.schedules.get_schedule(schedule.schedule_id, actors.agent)
    assert _amounts(reverted) == [Decimal("200000.00"), Decimal("300000.00"), Decimal("500000.00")]
    assert [inst.percentage for inst in reverted.installments] == [
        Decimal("20"),
        Decimal("30"),
        Decimal("50"),
    ]


def test_redistribution_with_equal_shares() -> None:
    schedule = PaymentSchedule(
        schedule_id=uuid4(),
        tenant_id=TENANT_ID,
        booking_id=uuid4(),
        name="Fixed",
        total_amount=Decimal("900"),
        installments=(
            Installment("A", Decimal("300"), percentage_based=False),
            Installment("B", Decimal("300"), percentage_based=False),
            Installment("C", Decimal("300"), percentage_based=False),
        ),
        created_by=uuid4(),
        created_at=CREATED_AT,
    )
    edited = schedule.with_installment_values(0, amount=Decimal("100"))

    redistributed, prior = edited.redistribute_remaining(0)

    assert _amounts(redistributed) == [Decimal("100.00"), Decimal("400.00"), Decimal("400.00")]
    assert [p.index for p in prior] == [1, 2]


def test_paid_installment_always_needs_approval(services, actors, stored) -> None:
    services.schedules.record_payment(stored.schedule_id, 0, Decimal("100000"), "cheque", actors.agent)

    outcome = services.schedules.update_installment(
        stored.schedule_id, 0, InstallmentChanges(amount=Decimal("401000")), actors.agent
    )

    assert outcome.approval_required


def test_forced_approval(services, actors, stored) -> None:
    outcome = services.schedules.update_installment(
        stored.schedule_id,
        1,
        InstallmentChanges(name="Possession"),
        actors.agent,
        force_approval=True,
    )

    assert outcome.approval_required


def test_pending_edit_blocks_conflicting_edits(services, actors, stored) -> None:
    services.schedules.update_installment(
        stored.schedule_id, 0, InstallmentChanges(amount=Decimal("450000")), actors.agent
    )

    with pytest.raises(ConflictError):
        services.schedules.update_installment(
            stored.schedule_id, 0, InstallmentChanges(amount=Decimal("460000")), actors.agent
        )
    with pytest.raises(ConflictError):
        services.schedules.update_total_amount(stored.schedule_id, Decimal("1100000"), actors.agent)

    other = services.schedules.update_installment(
        stored.schedule_id, 1, InstallmentChanges(due_date=date(2025, 6, 1)), actors.agent
    )
    assert other.schedule.installments[1].due_date == date(2025, 6, 1)


def test_redistributed_installments_are_held_by_the_pending_edit(services, actors) -> None:
    schedule = make_schedule("1000000", "20", "30", "50")
    services.repositories.schedules.add(schedule)
    outcome = services.schedules.update_installment(
        schedule.schedule_id,
        0,
        InstallmentChanges(amount=Decimal("250000")),
        actors.agent,
        redistribute_remaining=True,
    )

    with pytest.raises(ConflictError):
        services.schedules.update_installment(
            schedule.schedule_id, 1, InstallmentChanges(amount=Decimal("290000")), actors.agent
        )
    with pytest.raises(ConflictError):
        services.schedules.record_payment(schedule.schedule_id, 2, Decimal("100000"), "cheque", actors.agent)

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    edited = services.schedules.update_installment(
        schedule.schedule_id, 1, InstallmentChanges(amount=Decimal("305000")), actors.agent
    )
    assert edited.schedule.installments[1].amount == Decimal("305000.00")


def test_payment_waits_for_pending_edit_of_its_installment(services, actors, stored) -> None:
    outcome = services.schedules.update_installment(
        stored.schedule_id, 0, InstallmentChanges(amount=Decimal("450000")), actors.agent
    )

    with pytest.raises(ConflictError):
        services.schedules.record_payment(stored.schedule_id, 0, Decimal("450000"), "cheque", actors.agent)
    other = services.schedules.record_payment(stored.schedule_id, 1, Decimal("1000"), "cheque", actors.agent)
    assert other.installments[1].amount_paid == Decimal("1000")

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    paid = services.schedules.record_payment(stored.schedule_id, 0, Decimal("400000"), "cheque", actors.agent)
    assert paid.installments[0].status is InstallmentStatus.PAID
    assert paid.installments[0].remaining_due == Decimal("0")


def test_pending_total_change_blocks_every_payment(services, actors, stored) -> None:
    services.schedules.update_total_amount(stored.schedule_id, Decimal("1200000"), actors.agent)

    for index in (0, 1):
        with pytest.raises(ConflictError):
            services.schedules.record_payment(stored.schedule_id, index, Decimal("1000"), "cheque", actors.agent)

    schedule = services.schedules.get_schedule(stored.schedule_id, actors.agent)
    assert all(inst.amount_paid == Decimal("0") for inst in schedule.installments)


def test_raising_total_reopens_a_paid_installment(services, actors, stored) -> None:
    services.schedules.record_payment(stored.schedule_id, 0, Decimal("400000"), "cheque", actors.agent)

    outcome = services.schedules.update_total_amount(stored.schedule_id, Decimal("1200000"), actors.agent)

    first = outcome.schedule.installments[0]
    assert outcome.approval_required
    assert first.amount == Decimal("480000.00")
    assert first.status is InstallmentStatus.PARTIALLY_PAID
    assert first.remaining_due == Decimal("80000.00")

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.REJECT, actors.sales_director)

    reverted = services.schedules.get_schedule(stored.schedule_id, actors.agent).installments[0]
    assert reverted.amount == Decimal("400000.00")
    assert reverted.status is InstallmentStatus.PAID


def test_raising_a_paid_installment_reopens_it(services, actors, stored) -> None:
    services.schedules.record_payment(stored.schedule_id, 0, Decimal("400000"), "cheque", actors.agent)

    outcome = services.schedules.update_installment(
        stored.schedule_id, 0, InstallmentChanges(amount=Decimal("450000")), actors.agent
    )

    assert outcome.approval_required
    assert outcome.schedule.installments[0].status is InstallmentStatus.PARTIALLY_PAID

    services.approvals.process_approval(outcome.approval.approval_id, ApprovalAction.APPROVE, actors.sales_director)

    topped_up = services.schedules.record_payment(stored.schedule_id, 0, Decimal("50000"), "cheque", actors.agent)
    assert topped_up.installments[0].status is InstallmentStatus.PAID


def test_lowering_amount_to_what_was_paid_settles_the_installment() -> None:
    schedule = make_schedule("1000000", "40", "60").record_payment(
        0, Decimal("100000"), "cheque", None, CREATED_AT
    )

    edited = schedule.with_installment_values(0, amount=Decimal("100000"))

    assert edited.installments[0].status is InstallmentStatus.PAID
    assert edited.installments[0].remaining_due == Decimal("0")


def test_edit_validation(services, actors, stored) -> None:
    with pytest.raises(ValidationError):
        services.schedules.update_installment(
            stored.schedule_id, 5, InstallmentChanges(amount=Decimal("1")), actors.agent
        )
    with pytest.raises(ValidationError):
        services.schedules.update_installment(
            stored.schedule_id,
            0,
            InstallmentChanges(amount=Decimal("1"), percentage=Decimal("1")),
            actors.agent,
        )
    with pytest.raises(ValidationError):
        services.schedules.update_installment(
            stored.schedule_id, 0, InstallmentChanges(percentage=Decimal("101")), actors.agent
        )


def test_non_editable_installment(services, actors) -> None:
    schedule = PaymentSchedule(
        schedule_id=uuid4(),
        tenant_id=TENANT_ID,
        booking_id=uuid4(),
        name="Locked",
        total_amount=Decimal("1000"),
        installments=(Installment("Only", Decimal("1000"), Decimal("100"), editable=False),),
        created_by=uuid4(),
        created_at=CREATED_AT,
    )
    services.repositories.schedules.add(schedule)

    with pytest.raises(ValidationError):
        services.schedules.update_installment(
            schedule.schedule_id, 0, InstallmentChanges(amount=Decimal("900")), actors.principal
        )


# ---------------------------------------------------------------------------
# Creation and due dates
# ---------------------------------------------------------------------------


PLAN = (
    TemplateInstallment("Booking amount", percentage=Decimal("10")),
    TemplateInstallment(
        "Agreement",
        percentage=Decimal("20"),
        due_trigger=DueTrigger.AGREEMENT_DATE,
        trigger_offset=TriggerOffset(30),
    ),
    TemplateInstallment(
        "Slab",
        percentage=Decimal("30"),
        trigger_offset=TriggerOffset(2, OffsetUnit.MONTHS),
    ),
    TemplateInstallment(
        "Possession",
        percentage=Decimal("40"),
        due_trigger=DueTrigger.CONSTRUCTION_MILESTONE,
        trigger_milestone="possession",
    ),
)


@pytest.fixture
def booking(services, actors):
    return services.bookings.create_booking(LEAD_ID, UNIT_ID, actors.agent)


def test_create_schedule_from_template(services, actors, booking) -> None:
    template = services.templates.create_template("Standard", PLAN, actors.principal, project_id=PROJECT_ID)

    schedule = services.schedules.create_schedule(
        booking.booking_id,
        actors.agent,
        template_id=template.template_id,
        agreement_date=date(2025, 1, 15),
    )

    assert schedule.name == "Standard"
    assert schedule.total_amount == Decimal("5550000.00")
    assert _amounts(schedule) == [
        Decimal("555000.00"),
        Decimal("1110000.00"),
        Decimal("1665000.00"),
        Decimal("2220000.00"),
    ]
    assert [inst.due_date for inst in schedule.installments] == [
        date(2025, 1, 1),
        date(2025, 2, 14),
        date(2025, 3, 1),
        None,
    ]
    assert services.bookings.get_booking(booking.booking_id, actors.agent).payment_schedule_id == schedule.schedule_id
    assert services.schedules.get_schedule_for_booking(booking.booking_id, actors.agent) == schedule


def test_one_schedule_per_booking(services, actors, booking) -> None:
    services.schedules.create_schedule(booking.booking_id, actors.agent, installments=PLAN)

    with pytest.raises(ConflictError):
        services.schedules.create_schedule(booking.booking_id, actors.agent, installments=PLAN)


def test_create_schedule_falls_back_to_default_template(services, actors, booking) -> None:
    with pytest.raises(ValidationError):
        services.schedules.create_schedule(booking.booking_id, actors.agent)

    services.templates.create_template("Tenant default", PLAN, actors.principal, is_default=True)
    services.templates.create_template(
        "Project default", PLAN[:1] + (TemplateInstallment("Rest", percentage=Decimal("90")),),
        actors.principal,
        project_id=PROJECT_ID,
        is_default=True,
    )

    schedule = services.schedules.create_schedule(booking.booking_id, actors.agent)

    assert schedule.name == "Project default"
    assert len(schedule.installments) == 2


def test_milestone_date_and_overdue_installments(services, actors, clock, booking) -> None:
    schedule = services.schedules.create_schedule(booking.booking_id, actors.agent, installments=PLAN)

    with pytest.raises(ValidationError):
        services.schedules.set_milestone_date(schedule.schedule_id, "roof", date(2025, 6, 1), actors.agent)
    dated = services.schedules.set_milestone_date(
        schedule.schedule_id, "possession", date(2026, 6, 1), actors.agent
    )
    assert dated.installments[3].due_date == date(2026, 6, 1)

    services.schedules.record_payment(schedule.schedule_id, 0, Decimal("555000"), "cheque", actors.agent)
    clock.advance(days=90)

    overdue = services.schedules.overdue_installments(schedule.schedule_id, actors.agent)

    assert [index for index, _ in overdue] == [2]
    assert overdue[0][1].status is InstallmentStatus.OVERDUE


def test_month_offsets_clamp_to_month_end() -> None:
    assert TriggerOffset(1, OffsetUnit.MONTHS).apply(date(2025, 1, 31)) == date(2025, 2, 28)
    assert TriggerOffset(13, OffsetUnit.MONTHS).apply(date(2023, 1, 31)) == date(2024, 2, 29)
    assert TriggerOffset(2, OffsetUnit.WEEKS).apply(date(2025, 1, 1)) == date(2025, 1, 15)
