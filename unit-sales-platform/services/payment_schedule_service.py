"""
Payment schedule engine.

Generates a booking's installment plan (from a template or explicit
installments), keeps amounts reconciled with the schedule total, records
payments, and gates significant edits through the approval workflow.

Pending-approval edits are applied immediately and their change-history
entry is marked ``pending``. When the approval resolves, the entry becomes
``ratified`` (approved) or the edit is rolled back to the recorded previous
values and the entry becomes ``reverted`` (rejected). While an edit is
pending, edits and payments touching the installments it changed (every
installment, for a pending total change) are refused with ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from domain.actor import Actor
from domain.approval import Approval, ApprovalStatus, ApprovalType, EntityType
from domain.clock import Clock
from domain.errors import ConflictError, NotFoundError, StaleVersionError, ValidationError
from domain.money import ZERO, money, share_of, to_decimal
from domain.payment_schedule import (
    WHOLE_SCHEDULE,
    ChangeHistoryEntry,
    Installment,
    InstallmentStatus,
    InstallmentValues,
    PaymentSchedule,
    Ratification,
)
from domain.payment_schedule_template import TemplateInstallment, build_installments
from repositories.base import PaymentScheduleRepository, PaymentScheduleTemplateRepository
from services.approval_service import ApprovalWorkflow
from services.booking_service import BookingOrchestrator
from services.business_rules import BusinessRulesProvider, TenantBusinessRules

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InstallmentChanges:
    """Requested edit; give at most one of amount or percentage."""

    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    due_date: Optional[date] = None
    name: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ScheduleChangeOutcome:
    schedule: PaymentSchedule
    approval: Optional[Approval] = None

    @property
    def approval_required(self) -> bool:
        return self.approval is not None


def is_material_change(
    rules: TenantBusinessRules,
    amount_delta: Decimal,
    percentage_delta: Decimal,
) -> bool:
    return abs(amount_delta) > rules.materiality_amount or abs(percentage_delta) > rules.materiality_percentage


def _values(installment: Installment) -> InstallmentValues:
    return InstallmentValues(
        amount=installment.amount,
        percentage=installment.percentage,
        due_date=installment.due_date,
    )


class PaymentScheduleEngine:
    def __init__(
        self,
        schedules: PaymentScheduleRepository,
        templates: PaymentScheduleTemplateRepository,
        bookings: BookingOrchestrator,
        approvals: ApprovalWorkflow,
        rules: BusinessRulesProvider,
        clock: Clock,
    ) -> None:
        self._schedules = schedules
        self._templates = templates
        self._bookings = bookings
        self._approvals = approvals
        self._rules = rules
        self._clock = clock

    # Reads

    def get_schedule(self, schedule_id: UUID, actor: Actor) -> PaymentSchedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError("PaymentSchedule", schedule_id)
        actor.ensure_tenant(schedule.tenant_id, "PaymentSchedule")
        return schedule

    def get_schedule_for_booking(self, booking_id: UUID, actor: Actor) -> PaymentSchedule:
        self._bookings.get_booking(booking_id, actor)
        schedule = self._schedules.get_by_booking(booking_id)
        if schedule is None:
            raise NotFoundError("PaymentSchedule", booking_id)
        return schedule

    def overdue_installments(self, schedule_id: UUID, actor: Actor) -> List[Tuple[int, Installment]]:
        """Unpaid installments past their due date, as of the clock's today."""

        schedule = self.get_schedule(schedule_id, actor)
        today = self._clock.now().date()
        return [
            (index, replace(inst, status=InstallmentStatus.OVERDUE))
            for index, inst in enumerate(schedule.installments)
            if inst.status_as_of(today) is InstallmentStatus.OVERDUE
        ]

    # Writes

    def _persist(self, previous: PaymentSchedule, updated: PaymentSchedule, actor: Actor) -> PaymentSchedule:
        updated = replace(updated, updated_by=actor.actor_id, updated_at=self._clock.now())
        try:
            return self._schedules.update(updated, expected_version=previous.version)
        except StaleVersionError:
            logger.warning(
                "Payment schedule changed concurrently",
                extra={"schedule_id": str(previous.schedule_id), "actor_id": str(actor.actor_id)},
            )
            raise

    def _template_items(self, template_id: UUID, actor: Actor) -> Tuple[str, Tuple[TemplateInstallment, ...]]:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError("PaymentScheduleTemplate", template_id)
        actor.ensure_tenant(template.tenant_id, "PaymentScheduleTemplate")
        return template.name, template.installments

    def _default_template_items(
        self, project_id: UUID, actor: Actor
    ) -> Tuple[str, Tuple[TemplateInstallment, ...]]:
        defaults = self._templates.list(actor.tenant_id, project_id=project_id, is_default=True)
        if not defaults:
            raise ValidationError(
                "No template or installments given and no default template exists",
                project_id=str(project_id),
            )
        # A project default wins over the tenant-wide default.
        defaults.sort(key=lambda t: t.project_id is None)
        return defaults[0].name, defaults[0].installments

    def create_schedule(
        self,
        booking_id: UUID,
        actor: Actor,
        *,
        template_id: Optional[UUID] = None,
        installments: Optional[Sequence[TemplateInstallment]] = None,
        name: Optional[str] = None,
        description: str = "",
        agreement_date: Optional[date] = None,
        resolve_due_dates: bool = True,
    ) -> PaymentSchedule:
        """
        Create the payment schedule of a booking.

        Installments come from ``template_id``, from explicit ``installments``,
        or from the default template of the booking's project (or tenant).

        Args:
            agreement_date: Anchor for agreement-date triggers; those stay
                undated without it.
            resolve_due_dates: Derive due dates from each installment's trigger,
                anchored at the booking date.

        Raises:
            ConflictError: booking cancelled or already has a schedule
            ValidationError: percentages above 100%, or below 100% with no
                fixed amounts
        """

        booking = self._bookings.get_booking(booking_id, actor)
        if booking.is_terminal:
            raise ConflictError("Cannot create a schedule for a cancelled booking", booking_id=str(booking_id))
        if self._schedules.get_by_booking(booking_id) is not None:
            raise ConflictError(
                "Payment schedule already exists for this booking", booking_id=str(booking_id)
            )

        if template_id is not None:
            default_name, items = self._template_items(template_id, actor)
        elif installments is not None:
            default_name, items = "Payment Schedule", tuple(installments)
        else:
            default_name, items = self._default_template_items(booking.project_id, actor)

        total_amount = booking.total_booking_amount
        schedule = PaymentSchedule(
            schedule_id=uuid4(),
            tenant_id=booking.tenant_id,
            booking_id=booking_id,
            name=name or default_name,
            description=description,
            total_amount=total_amount,
            installments=build_installments(items, total_amount),
            created_by=actor.actor_id,
            created_at=self._clock.now(),
        ).recalculate_amounts()
        if resolve_due_dates:
            schedule = schedule.calculate_due_dates(booking.created_at.date(), agreement_date)

        self._schedules.add(schedule)
        self._bookings.attach_payment_schedule(booking_id, schedule.schedule_id, actor)
        logger.info(
            "Payment schedule created",
            extra={
                "schedule_id": str(schedule.schedule_id),
                "booking_id": str(booking_id),
                "installments": len(schedule.installments),
                "total": str(total_amount),
            },
        )
        return schedule

    def _ensure_no_pending(self, schedule: PaymentSchedule, index: int) -> None:
        entry = schedule.pending_change_for(index)
        if entry is not None:
            raise ConflictError(
                "An earlier change to this schedule is awaiting approval",
                schedule_id=str(schedule.schedule_id),
                index=index,
                approval_id=str(entry.approval_id),
            )

    def _open_approval(
        self,
        previous: PaymentSchedule,
        stored: PaymentSchedule,
        approval_id: UUID,
        actor: Actor,
        amount_delta: Decimal,
        percentage_delta: Decimal,
        reason: str,
    ) -> Approval:
        """Open the approval of a stored pending edit; withdraw the edit if that fails."""

        try:
            return self._approvals.create_approval(
                ApprovalType.PAYMENT_SCHEDULE,
                EntityType.PAYMENT_SCHEDULE,
                stored.schedule_id,
                actor,
                amount=abs(amount_delta),
                percentage=abs(percentage_delta),
                justification=reason,
                approval_id=approval_id,
            )
        except Exception:
            logger.warning(
                "Approval could not be opened; withdrawing schedule change",
                extra={"schedule_id": str(stored.schedule_id), "approval_id": str(approval_id)},
            )
            withdrawn = replace(
                stored,
                total_amount=previous.total_amount,
                installments=previous.installments,
                change_history=previous.change_history,
            )
            self._persist(stored, withdrawn, actor)
            raise

    def update_installment(
        self,
        schedule_id: UUID,
        index: int,
        changes: InstallmentChanges,
        actor: Actor,
        reason: str = "",
        *,
        force_approval: bool = False,
        redistribute_remaining: bool = False,
    ) -> ScheduleChangeOutcome:
        """
        Edit one installment.

        Approval is required when the installment already has payments, when
        the amount or percentage moves by more than the tenant's materiality
        threshold, or when ``force_approval`` is set.

        Args:
            redistribute_remaining: Spread the unallocated balance over later
                upcoming installments after the edit.

        Raises:
            ValidationError: bad index, non-editable installment, invalid values
            ConflictError: an earlier edit of this installment is still pending
        """

        schedule = self.get_schedule(schedule_id, actor)
        current = schedule.installment(index)
        if not current.editable:
            raise ValidationError("This installment is not editable", index=index)
        self._ensure_no_pending(schedule, index)

        updated = schedule.with_installment_values(
            index,
            amount=changes.amount,
            percentage=changes.percentage,
            due_date=changes.due_date,
            name=changes.name,
            description=changes.description,
        )
        edited = updated.installment(index)

        amount_delta = edited.amount - current.amount
        percentage_delta = (edited.percentage or ZERO) - (current.percentage or ZERO)
        rules = self._rules.rules_for(schedule.tenant_id)
        needs_approval = (
            current.has_payments
            or force_approval
            or is_material_change(rules, amount_delta, percentage_delta)
        )

        redistributed: Tuple = ()
        if redistribute_remaining:
            updated, redistributed = updated.redistribute_remaining(index)

        approval_id = uuid4() if needs_approval else None
        entry = ChangeHistoryEntry(
            changed_by=actor.actor_id,
            changed_at=self._clock.now(),
            installment_index=index,
            previous_values=_values(current),
            new_values=_values(edited),
            reason=reason,
            approval_id=approval_id,
            ratification=Ratification.PENDING if needs_approval else Ratification.NOT_REQUIRED,
            redistributed=redistributed,
        )
        stored = self._persist(schedule, updated.with_history(entry), actor)

        approval = None
        if approval_id is not None:
            approval = self._open_approval(
                schedule, stored, approval_id, actor, amount_delta, percentage_delta, reason
            )
        logger.info(
            "Installment updated",
            extra={
                "schedule_id": str(schedule_id),
                "index": index,
                "amount_delta": str(amount_delta),
                "needs_approval": needs_approval,
                "redistributed": len(redistributed),
            },
        )
        return ScheduleChangeOutcome(schedule=stored, approval=approval)

    def update_total_amount(
        self,
        schedule_id: UUID,
        new_total: Decimal,
        actor: Actor,
        reason: str = "",
        *,
        force_approval: bool = False,
    ) -> ScheduleChangeOutcome:
        """
        Change the schedule total and re-derive installment amounts.

        Same approval test as update_installment, applied to the total; an
        existing payment anywhere on the schedule always requires approval.
        """

        schedule = self.get_schedule(schedule_id, actor)
        new_total = money(to_decimal(new_total))
        if new_total <= ZERO:
            raise ValidationError("Total amount must be greater than zero")
        self._ensure_no_pending(schedule, WHOLE_SCHEDULE)

        updated = replace(schedule, total_amount=new_total).recalculate_amounts()
        for index, inst in enumerate(updated.installments):
            if inst.amount < inst.amount_paid:
                raise ValidationError(
                    "New total would put an installment below the amount already paid",
                    index=index,
                )

        amount_delta = new_total - schedule.total_amount
        percentage_delta = share_of(amount_delta, schedule.total_amount)
        rules = self._rules.rules_for(schedule.tenant_id)
        needs_approval = (
            schedule.has_payments()
            or force_approval
            or is_material_change(rules, amount_delta, percentage_delta)
        )

        approval_id = uuid4() if needs_approval else None
        entry = ChangeHistoryEntry(
            changed_by=actor.actor_id,
            changed_at=self._clock.now(),
            installment_index=WHOLE_SCHEDULE,
            previous_values=InstallmentValues(amount=schedule.total_amount),
            new_values=InstallmentValues(amount=new_total),
            reason=reason,
            approval_id=approval_id,
            ratification=Ratification.PENDING if needs_approval else Ratification.NOT_REQUIRED,
        )
        stored = self._persist(schedule, updated.with_history(entry), actor)

        approval = None
        if approval_id is not None:
            approval = self._open_approval(
                schedule, stored, approval_id, actor, amount_delta, percentage_delta, reason
            )
        logger.info(
            "Schedule total updated",
            extra={
                "schedule_id": str(schedule_id),
                "previous_total": str(schedule.total_amount),
                "new_total": str(new_total),
                "needs_approval": needs_approval,
            },
        )
        return ScheduleChangeOutcome(schedule=stored, approval=approval)

    def record_payment(
        self,
        schedule_id: UUID,
        index: int,
        amount: Decimal,
        method: str,
        actor: Actor,
        reference: Optional[str] = None,
    ) -> PaymentSchedule:
        """
        Record a (partial) payment against one installment.

        Raises:
            ValidationError: bad index, amount <= 0, or overpayment
            ConflictError: a pending change holds this installment
            StaleVersionError: a concurrent payment landed first
        """

        schedule = self.get_schedule(schedule_id, actor)
        schedule.installment(index)
        self._ensure_no_pending(schedule, index)
        updated = schedule.record_payment(index, amount, method, reference, self._clock.now())
        stored = self._persist(schedule, updated, actor)
        inst = stored.installments[index]
        logger.info(
            "Payment recorded",
            extra={
                "schedule_id": str(schedule_id),
                "index": index,
                "amount": str(amount),
                "amount_paid": str(inst.amount_paid),
                "status": inst.status.value,
            },
        )
        return stored

    def set_milestone_date(
        self, schedule_id: UUID, milestone: str, reached_on: date, actor: Actor
    ) -> PaymentSchedule:
        """Date every installment triggered by ``milestone``."""

        schedule = self.get_schedule(schedule_id, actor)
        updated = schedule.set_milestone_date(milestone, reached_on)
        if updated.installments == schedule.installments:
            raise ValidationError("No installment is triggered by this milestone", milestone=milestone)
        return self._persist(schedule, updated, actor)

    def resolve_approval(self, approval: Approval, actor: Actor) -> None:
        """Ratify or roll back the edits waiting on a terminal approval."""

        schedule = self._schedules.get(approval.entity_id)
        if schedule is None:
            raise NotFoundError("PaymentSchedule", approval.entity_id)
        entries = schedule.pending_entries(approval.approval_id)
        if not entries:
            return

        if approval.status is ApprovalStatus.APPROVED:
            updated = schedule.with_ratification(approval.approval_id, Ratification.RATIFIED)
            self._persist(schedule, updated, actor)
            logger.info(
                "Schedule change ratified",
                extra={"schedule_id": str(schedule.schedule_id), "approval_id": str(approval.approval_id)},
            )
            return

        updated = schedule
        for entry in reversed(entries):
            updated = _revert(updated, entry)
        updated = updated.with_ratification(approval.approval_id, Ratification.REVERTED)
        self._persist(schedule, updated, actor)
        logger.warning(
            "Schedule change reverted after rejection",
            extra={"schedule_id": str(schedule.schedule_id), "approval_id": str(approval.approval_id)},
        )


def _revert(schedule: PaymentSchedule, entry: ChangeHistoryEntry) -> PaymentSchedule:
    previous = entry.previous_values
    if entry.installment_index == WHOLE_SCHEDULE:
        return replace(schedule, total_amount=previous.amount).recalculate_amounts()

    installments = list(schedule.installments)
    inst = installments[entry.installment_index]
    installments[entry.installment_index] = replace(
        inst,
        amount=previous.amount,
        percentage=previous.percentage,
        due_date=previous.due_date,
    )
    for moved in entry.redistributed:
        installments[moved.index] = replace(
            installments[moved.index],
            amount=moved.previous_amount,
            percentage=moved.previous_percentage,
        )
    return replace(schedule, installments=tuple(inst.settled() for inst in installments))


__all__ = [
    "InstallmentChanges",
    "ScheduleChangeOutcome",
    "is_material_change",
    "PaymentScheduleEngine",
]
