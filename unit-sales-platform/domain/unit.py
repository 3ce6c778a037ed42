"""
Domain: sellable inventory unit and its availability state machine.

States: available, locked, booked, sold.

    available --lock--------> locked
    locked    --release-----> available     (also implied once the lock expires)
    available/locked --book-> booked
    booked    --sell--------> sold
    booked    --release_booking(booking_id)--> available   (cancellation)

Lock expiry is lazy: a unit stored as ``locked`` whose ``locked_until`` is not
in the future is treated as ``available``. Nothing rewrites expired locks in
the background; every read applies ``effective_status(now)``.

Transitions never mutate: they return a new Unit, leaving the version as-is
so the repository can compare-and-swap against the version that was read.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .errors import ConflictError, ValidationError
from .pricing import AdditionalCharge, PremiumAdjustment
from .time import require_optional_utc_timestamp, require_utc_timestamp


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    LOCKED = "locked"
    BOOKED = "booked"
    SOLD = "sold"


@dataclass(frozen=True, slots=True)
class Unit:
    unit_id: UUID
    tenant_id: UUID
    project_id: UUID
    tower_id: UUID
    number: str
    floor: int
    unit_type: str
    carpet_area: Decimal
    built_up_area: Decimal
    super_built_up_area: Decimal
    base_price: Decimal  # rate per unit of chargeable (super built-up) area
    status: UnitStatus = UnitStatus.AVAILABLE
    views: Tuple[str, ...] = ()
    premium_adjustments: Tuple[PremiumAdjustment, ...] = ()
    additional_charges: Tuple[AdditionalCharge, ...] = ()
    locked_by: Optional[UUID] = None
    locked_until: Optional[datetime] = None
    booking_id: Optional[UUID] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("locked_until", self.locked_until)
        if self.status is UnitStatus.LOCKED and self.locked_until is None:
            raise ValueError("a locked unit must carry locked_until")

    @property
    def chargeable_area(self) -> Decimal:
        return self.super_built_up_area

    def is_validly_locked(self, now: datetime) -> bool:
        return (
            self.status is UnitStatus.LOCKED
            and self.locked_until is not None
            and self.locked_until > now
        )

    def effective_status(self, now: datetime) -> UnitStatus:
        """Stored status with lazy lock expiry applied."""

        if self.status is UnitStatus.LOCKED and not self.is_validly_locked(now):
            return UnitStatus.AVAILABLE
        return self.status

    def lock(self, actor_id: UUID, minutes: int, now: datetime) -> "Unit":
        require_utc_timestamp("now", now)
        if minutes <= 0:
            raise ValidationError("lock duration must be positive", minutes=minutes)
        current = self.effective_status(now)
        if current is not UnitStatus.AVAILABLE:
            raise ConflictError(
                f"Unit is not available. Current status: {current.value}",
                unit_id=str(self.unit_id),
                status=current.value,
            )
        return replace(
            self,
            status=UnitStatus.LOCKED,
            locked_by=actor_id,
            locked_until=now + timedelta(minutes=minutes),
        )

    def release(self, now: datetime) -> "Unit":
        """
        Release a lock. Releasing an already-expired lock returns the unit
        unchanged (the lock is gone either way).
        """

        if self.status is not UnitStatus.LOCKED:
            raise ConflictError(
                f"Unit is not locked. Current status: {self.status.value}",
                unit_id=str(self.unit_id),
                status=self.status.value,
            )
        if not self.is_validly_locked(now):
            return self
        return self._cleared(UnitStatus.AVAILABLE)

    def book(self, booking_id: UUID, now: datetime) -> "Unit":
        current = self.effective_status(now)
        if current not in (UnitStatus.AVAILABLE, UnitStatus.LOCKED) or self.booking_id is not None:
            raise ConflictError(
                f"Unit cannot be booked. Current status: {current.value}",
                unit_id=str(self.unit_id),
                status=current.value,
            )
        return replace(
            self,
            status=UnitStatus.BOOKED,
            locked_by=None,
            locked_until=None,
            booking_id=booking_id,
        )

    def sell(self) -> "Unit":
        if self.status is not UnitStatus.BOOKED:
            raise ConflictError(
                f"Unit cannot be sold. Current status: {self.status.value}",
                unit_id=str(self.unit_id),
                status=self.status.value,
            )
        return replace(self, status=UnitStatus.SOLD)

    def release_booking(self, booking_id: UUID) -> "Unit":
        """Return a booked unit to inventory when its owning booking is cancelled."""

        if self.status is not UnitStatus.BOOKED or self.booking_id != booking_id:
            raise ConflictError(
                "Unit is not booked by this booking",
                unit_id=str(self.unit_id),
                status=self.status.value,
                booking_id=str(booking_id),
            )
        return self._cleared(UnitStatus.AVAILABLE)

    def _cleared(self, status: UnitStatus) -> "Unit":
        return replace(self, status=status, locked_by=None, locked_until=None, booking_id=None)
