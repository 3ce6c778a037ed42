"""
Domain: reusable payment schedule template.

A template lists installments by percentage (or fixed amount) without a
total. ``to_installments(total_amount)`` turns it into the concrete
installments of one booking's schedule:

- percentages must not sum above 100;
- a plan below 100% is only accepted when fixed-amount installments make up
  the rest;
- percentage installments get ``percentage / 100 * total``; fixed installments
  back-derive their display percentage from the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from .errors import ValidationError
from .money import HUNDRED, ZERO, money, share_of, to_decimal, total
from .payment_schedule import DueTrigger, Installment, TriggerOffset
from .time import require_optional_utc_timestamp, require_utc_timestamp


@dataclass(frozen=True, slots=True)
class TemplateInstallment:
    name: str
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    description: str = ""
    due_trigger: DueTrigger = DueTrigger.BOOKING_DATE
    trigger_offset: TriggerOffset = TriggerOffset()
    trigger_milestone: Optional[str] = None
    fixed_date: Optional[date] = None

    @property
    def is_fixed_amount(self) -> bool:
        return self.percentage is None and self.amount is not None

    def validate(self) -> None:
        if (self.percentage is None) == (self.amount is None):
            raise ValidationError(
                "Installment needs exactly one of percentage or amount",
                installment=self.name,
            )
        if self.percentage is not None and not (ZERO <= to_decimal(self.percentage) <= HUNDRED):
            raise ValidationError("Percentage must be between 0 and 100", installment=self.name)
        if self.amount is not None and to_decimal(self.amount) < ZERO:
            raise ValidationError("Amount must not be negative", installment=self.name)
        if self.due_trigger is DueTrigger.CONSTRUCTION_MILESTONE and not self.trigger_milestone:
            raise ValidationError(
                "Milestone-triggered installment needs a milestone name",
                installment=self.name,
            )


def validate_installments(installments: Tuple[TemplateInstallment, ...]) -> None:
    """Reject empty plans, malformed rows, and percentage totals above 100."""

    if not installments:
        raise ValidationError("Payment schedule must have at least one installment")
    for item in installments:
        item.validate()
    percentage_total = total(
        to_decimal(i.percentage) for i in installments if i.percentage is not None
    )
    if percentage_total > HUNDRED:
        raise ValidationError(
            "Total percentage cannot exceed 100%",
            percentage_total=str(percentage_total),
        )


def build_installments(
    installments: Tuple[TemplateInstallment, ...], total_amount: Decimal
) -> Tuple[Installment, ...]:
    validate_installments(installments)
    percentage_total = total(
        to_decimal(i.percentage) for i in installments if i.percentage is not None
    )
    has_fixed = any(i.is_fixed_amount for i in installments)
    if percentage_total < HUNDRED and not has_fixed:
        raise ValidationError(
            "Total percentage is less than 100% and no fixed amounts are specified",
            percentage_total=str(percentage_total),
        )

    built = []
    for item in installments:
        if item.is_fixed_amount:
            amount = money(item.amount)
            built.append(
                Installment(
                    name=item.name,
                    description=item.description,
                    amount=amount,
                    percentage=share_of(amount, total_amount),
                    percentage_based=False,
                    due_trigger=item.due_trigger,
                    trigger_offset=item.trigger_offset,
                    trigger_milestone=item.trigger_milestone,
                    due_date=item.fixed_date,
                )
            )
        else:
            percentage = to_decimal(item.percentage)
            built.append(
                Installment(
                    name=item.name,
                    description=item.description,
                    amount=money(total_amount * percentage / HUNDRED),
                    percentage=percentage,
                    percentage_based=True,
                    due_trigger=item.due_trigger,
                    trigger_offset=item.trigger_offset,
                    trigger_milestone=item.trigger_milestone,
                    due_date=item.fixed_date,
                )
            )
    return tuple(built)


@dataclass(frozen=True, slots=True)
class PaymentScheduleTemplate:
    template_id: UUID
    tenant_id: UUID
    name: str
    installments: Tuple[TemplateInstallment, ...]
    created_by: UUID
    created_at: datetime
    description: str = ""
    project_id: Optional[UUID] = None
    is_default: bool = False
    updated_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)

    def to_installments(self, total_amount: Decimal) -> Tuple[Installment, ...]:
        return build_installments(self.installments, total_amount)
