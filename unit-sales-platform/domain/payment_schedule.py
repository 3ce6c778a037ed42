"""
Domain: installment payment schedule for one booking.

Invariants:
- After every recalculation the installment amounts reconcile with the
  schedule total (rounding residue goes to the last percentage-based
  installment).
- Percentage-based installments derive their amount from the total;
  fixed-amount installments keep their amount and only refresh the display
  percentage.
- Paid and partially paid installments are never overwritten silently; the
  schedule service routes edits to them through approval and records every
  edit in ``change_history``.

All methods are pure and return a new PaymentSchedule.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .errors import ValidationError
from .money import HUNDRED, ZERO, money, share_of, to_decimal, total
from .time import require_optional_utc_timestamp, require_utc_timestamp

WHOLE_SCHEDULE = -1


class InstallmentStatus(str, Enum):
    UPCOMING = "upcoming"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"


class DueTrigger(str, Enum):
    BOOKING_DATE = "booking_date"
    AGREEMENT_DATE = "agreement_date"
    CONSTRUCTION_MILESTONE = "construction_milestone"
    FIXED_DATE = "fixed_date"


class OffsetUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class Ratification(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    RATIFIED = "ratified"
    REVERTED = "reverted"


@dataclass(frozen=True, slots=True)
class TriggerOffset:
    value: int = 0
    unit: OffsetUnit = OffsetUnit.DAYS

    def apply(self, base: date) -> date:
        if self.unit is OffsetUnit.DAYS:
            return base + timedelta(days=self.value)
        if self.unit is OffsetUnit.WEEKS:
            return base + timedelta(weeks=self.value)
        return _add_months(base, self.value)


def _add_months(base: date, months: int) -> date:
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True, slots=True)
class Installment:
    name: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    percentage_based: bool = True
    description: str = ""
    due_trigger: DueTrigger = DueTrigger.FIXED_DATE
    trigger_offset: TriggerOffset = TriggerOffset()
    trigger_milestone: Optional[str] = None
    due_date: Optional[date] = None
    status: InstallmentStatus = InstallmentStatus.UPCOMING
    amount_paid: Decimal = ZERO
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    editable: bool = True

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("payment_date", self.payment_date)
        if self.percentage_based and self.percentage is None:
            raise ValueError("a percentage-based installment needs a percentage")

    @property
    def remaining_due(self) -> Decimal:
        return self.amount - self.amount_paid

    @property
    def has_payments(self) -> bool:
        return self.status in (InstallmentStatus.PAID, InstallmentStatus.PARTIALLY_PAID)

    def settled(self) -> "Installment":
        """Re-derive paid/partially paid status after the amount moved."""

        if self.amount_paid <= ZERO:
            return self
        status = (
            InstallmentStatus.PAID if self.amount_paid >= self.amount else InstallmentStatus.PARTIALLY_PAID
        )
        if status is self.status:
            return self
        return replace(self, status=status)

    def status_as_of(self, today: date) -> InstallmentStatus:
        """Stored status with overdue derived from the due date."""

        if (
            self.status in (InstallmentStatus.UPCOMING, InstallmentStatus.OVERDUE)
            and self.due_date is not None
            and self.due_date < today
        ):
            return InstallmentStatus.OVERDUE
        return self.status


@dataclass(frozen=True, slots=True)
class InstallmentValues:
    """Snapshot of the editable money/date fields (amount is the total for WHOLE_SCHEDULE)."""

    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    due_date: Optional[date] = None


@dataclass(frozen=True, slots=True)
class RedistributedInstallment:
    index: int
    previous_amount: Decimal
    previous_percentage: Optional[Decimal]


@dataclass(frozen=True, slots=True)
class ChangeHistoryEntry:
    changed_by: UUID
    changed_at: datetime
    installment_index: int
    previous_values: InstallmentValues
    new_values: InstallmentValues
    reason: str
    approval_id: Optional[UUID] = None
    ratification: Ratification = Ratification.NOT_REQUIRED
    redistributed: Tuple[RedistributedInstallment, ...] = ()

    def __post_init__(self) -> None:
        require_utc_timestamp("changed_at", self.changed_at)


@dataclass(frozen=True, slots=True)
class PaymentSchedule:
    schedule_id: UUID
    tenant_id: UUID
    booking_id: UUID
    name: str
    total_amount: Decimal
    installments: Tuple[Installment, ...]
    created_by: UUID
    created_at: datetime
    description: str = ""
    change_history: Tuple[ChangeHistoryEntry, ...] = ()
    updated_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)

    def installment(self, index: int) -> Installment:
        if index < 0 or index >= len(self.installments):
            raise ValidationError(
                "Invalid installment index",
                schedule_id=str(self.schedule_id),
                index=index,
            )
        return self.installments[index]

    def allocated_amount(self) -> Decimal:
        return total(i.amount for i in self.installments)

    def has_payments(self) -> bool:
        return any(i.has_payments for i in self.installments)

    def _with_installment(self, index: int, installment: Installment) -> "PaymentSchedule":
        installments = list(self.installments)
        installments[index] = installment
        return replace(self, installments=tuple(installments))

    def recalculate_amounts(self) -> "PaymentSchedule":
        """
        Re-derive percentage-based amounts from the current total.

        Idempotent. Fixed-amount installments keep their amount; their display
        percentage is refreshed against the total.
        """

        installments = list(self.installments)
        percentage_indexes = [i for i, inst in enumerate(installments) if inst.percentage_based]
        fixed_total = ZERO
        percentage_sum = ZERO

        for i, inst in enumerate(installments):
            if inst.percentage_based:
                percentage_sum += inst.percentage
                installments[i] = replace(inst, amount=money(self.total_amount * inst.percentage / HUNDRED))
            else:
                fixed_total += inst.amount
                installments[i] = replace(inst, percentage=share_of(inst.amount, self.total_amount))

        if percentage_indexes:
            expected = money(fixed_total + self.total_amount * percentage_sum / HUNDRED)
            residue = expected - total(inst.amount for inst in installments)
            if residue != ZERO:
                last = percentage_indexes[-1]
                installments[last] = replace(installments[last], amount=installments[last].amount + residue)

        return replace(self, installments=tuple(inst.settled() for inst in installments))

    def with_installment_values(
        self,
        index: int,
        *,
        amount: Optional[Decimal] = None,
        percentage: Optional[Decimal] = None,
        due_date: Optional[date] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> "PaymentSchedule":
        """
        Apply an edit to one installment. Amount paid is never touched here;
        status follows it against the new amount. A new percentage re-derives
        the amount; a new amount re-derives the display percentage.
        """

        if amount is not None and percentage is not None:
            raise ValidationError("Specify either amount or percentage, not both", index=index)
        inst = self.installment(index)
        if percentage is not None:
            percentage = to_decimal(percentage)
            if percentage < ZERO or percentage > HUNDRED:
                raise ValidationError("Percentage must be between 0 and 100", index=index)
            inst = replace(
                inst,
                percentage=percentage,
                amount=money(self.total_amount * percentage / HUNDRED),
            )
        if amount is not None:
            amount = money(amount)
            if amount < ZERO:
                raise ValidationError("Amount must not be negative", index=index)
            inst = replace(inst, amount=amount, percentage=share_of(amount, self.total_amount))
        if inst.amount < inst.amount_paid:
            raise ValidationError("Amount cannot drop below the amount already paid", index=index)
        if due_date is not None:
            inst = replace(inst, due_date=due_date)
        if name is not None:
            inst = replace(inst, name=name)
        if description is not None:
            inst = replace(inst, description=description)
        return self._with_installment(index, inst.settled())

    def redistribute_remaining(
        self, changed_index: int
    ) -> tuple["PaymentSchedule", Tuple[RedistributedInstallment, ...]]:
        """
        Spread the unallocated balance over later upcoming installments.

        Proportional to their percentages when they carry any, otherwise
        equal shares. Returns the new schedule and the prior values of every
        installment it changed.
        """

        targets = [
            i
            for i, inst in enumerate(self.installments)
            if i > changed_index and inst.status is InstallmentStatus.UPCOMING
        ]
        if not targets:
            return self, ()

        allocated = total(
            inst.amount for i, inst in enumerate(self.installments) if i not in targets
        )
        remaining = self.total_amount - allocated
        if remaining <= ZERO:
            return self, ()

        weight_total = total(self.installments[i].percentage or ZERO for i in targets)
        installments = list(self.installments)
        prior: list[RedistributedInstallment] = []
        assigned = ZERO
        for position, i in enumerate(targets):
            inst = installments[i]
            prior.append(RedistributedInstallment(i, inst.amount, inst.percentage))
            if position == len(targets) - 1:
                amount = remaining - assigned
            elif weight_total > ZERO:
                amount = money(remaining * (inst.percentage or ZERO) / weight_total)
            else:
                amount = money(remaining / len(targets))
            assigned += amount
            installments[i] = replace(
                inst,
                amount=amount,
                percentage=share_of(amount, self.total_amount),
            )
        return replace(self, installments=tuple(installments)), tuple(prior)

    def calculate_due_dates(
        self, booking_date: date, agreement_date: Optional[date] = None
    ) -> "PaymentSchedule":
        """
        Resolve due dates from each installment's trigger. Fixed dates are kept;
        milestone-triggered installments wait for set_milestone_date().
        """

        installments = []
        for inst in self.installments:
            base: Optional[date] = None
            if inst.due_trigger is DueTrigger.BOOKING_DATE:
                base = booking_date
            elif inst.due_trigger is DueTrigger.AGREEMENT_DATE:
                base = agreement_date
            if base is not None:
                inst = replace(inst, due_date=inst.trigger_offset.apply(base))
            installments.append(inst)
        return replace(self, installments=tuple(installments))

    def set_milestone_date(self, milestone: str, reached_on: date) -> "PaymentSchedule":
        installments = tuple(
            replace(inst, due_date=inst.trigger_offset.apply(reached_on))
            if inst.due_trigger is DueTrigger.CONSTRUCTION_MILESTONE
            and inst.trigger_milestone == milestone
            else inst
            for inst in self.installments
        )
        return replace(self, installments=installments)

    def record_payment(
        self,
        index: int,
        amount: Decimal,
        method: str,
        reference: Optional[str],
        paid_at: datetime,
    ) -> "PaymentSchedule":
        require_utc_timestamp("paid_at", paid_at)
        inst = self.installment(index)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than zero", index=index)
        if amount > inst.remaining_due:
            raise ValidationError(
                "Payment amount exceeds remaining amount due",
                index=index,
                remaining_due=str(inst.remaining_due),
            )

        amount_paid = inst.amount_paid + amount
        status = (
            InstallmentStatus.PAID if amount_paid >= inst.amount else InstallmentStatus.PARTIALLY_PAID
        )
        return self._with_installment(
            index,
            replace(
                inst,
                amount_paid=amount_paid,
                status=status,
                payment_date=paid_at,
                payment_method=method,
                reference=reference,
            ),
        )

    def with_history(self, entry: ChangeHistoryEntry) -> "PaymentSchedule":
        return replace(self, change_history=self.change_history + (entry,))

    def with_ratification(self, approval_id: UUID, ratification: Ratification) -> "PaymentSchedule":
        history = tuple(
            replace(entry, ratification=ratification)
            if entry.approval_id == approval_id and entry.ratification is Ratification.PENDING
            else entry
            for entry in self.change_history
        )
        return replace(self, change_history=history)

    def pending_change_for(self, index: int) -> Optional[ChangeHistoryEntry]:
        """
        The pending change that holds ``index``, if any.

        A pending edit holds its own installment and every installment it
        redistributed into; a pending total change holds the whole schedule.
        """

        for entry in self.change_history:
            if entry.ratification is not Ratification.PENDING:
                continue
            if WHOLE_SCHEDULE in (index, entry.installment_index):
                return entry
            if index == entry.installment_index or index in {r.index for r in entry.redistributed}:
                return entry
        return None

    def pending_entries(self, approval_id: UUID) -> Tuple[ChangeHistoryEntry, ...]:
        return tuple(
            entry
            for entry in self.change_history
            if entry.approval_id == approval_id and entry.ratification is Ratification.PENDING
        )
