"""
Domain: booking (a committed sale transaction on one unit).

Status moves forward only; cancellation is reachable from every
non-terminal state:

    draft            -> pending_approval | approved | cancelled
    pending_approval -> approved | cancelled
    approved         -> executed | cancelled
    executed         -> cancelled
    cancelled        -> (terminal)

The stored ``total_booking_amount`` must always equal the pricing engine's
recomputation over the booking's premiums, approved discounts, charges and
taxes. Recomputation is the booking service's job and happens before every
persist; this module only holds the data and the transition table.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Tuple
from uuid import UUID

from .errors import ConflictError
from .lead import CustomerSnapshot
from .pricing import AdditionalCharge, Discount, DiscountStatus, PremiumLine, PriceBreakdown
from .project import TaxRates
from .time import require_optional_utc_timestamp, require_utc_timestamp


class BookingStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


BOOKING_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.DRAFT: frozenset(
        {BookingStatus.PENDING_APPROVAL, BookingStatus.APPROVED, BookingStatus.CANCELLED}
    ),
    BookingStatus.PENDING_APPROVAL: frozenset({BookingStatus.APPROVED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.EXECUTED, BookingStatus.CANCELLED}),
    BookingStatus.EXECUTED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[current]


@dataclass(frozen=True, slots=True)
class CancellationRecord:
    date: datetime
    reason: str
    requested_by: UUID
    approved_by: UUID

    def __post_init__(self) -> None:
        require_utc_timestamp("date", self.date)


@dataclass(frozen=True, slots=True)
class BookingNote:
    content: str
    created_by: UUID
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Booking:
    booking_id: UUID
    tenant_id: UUID
    booking_number: str
    lead_id: UUID
    customer: CustomerSnapshot
    unit_id: UUID
    project_id: UUID
    tower_id: UUID
    base_price: Decimal
    tax_rates: TaxRates
    breakdown: PriceBreakdown
    total_booking_amount: Decimal
    status: BookingStatus
    created_by: UUID
    created_at: datetime
    premiums: Tuple[PremiumLine, ...] = ()
    discounts: Tuple[Discount, ...] = ()
    additional_charges: Tuple[AdditionalCharge, ...] = ()
    notes: Tuple[BookingNote, ...] = ()
    cancellation: Optional[CancellationRecord] = None
    payment_schedule_id: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_terminal(self) -> bool:
        return self.status is BookingStatus.CANCELLED

    def has_pending_discounts(self) -> bool:
        return any(d.status is DiscountStatus.PENDING for d in self.discounts)

    def approved_discounts(self) -> Tuple[Discount, ...]:
        return tuple(d for d in self.discounts if d.is_approved)

    def with_status(self, target: BookingStatus) -> "Booking":
        if not can_transition(self.status, target):
            raise ConflictError(
                f"Cannot change status from {self.status.value} to {target.value}",
                booking_id=str(self.booking_id),
                status=self.status.value,
                target=target.value,
            )
        return replace(self, status=target)

    def with_discount_status(self, approval_id: UUID, status: DiscountStatus) -> "Booking":
        """Resolve every discount waiting on ``approval_id``."""

        discounts = tuple(
            replace(d, status=status) if d.approval_id == approval_id else d
            for d in self.discounts
        )
        return replace(self, discounts=discounts)


def format_booking_number(created_at: datetime, sequence: int) -> str:
    """BK-YY-MM-NNNN, where NNNN counts the tenant's bookings in that month."""

    return f"BK-{created_at:%y}-{created_at:%m}-{sequence:04d}"
