"""
Domain: price building blocks (pure value objects).

These types are shared by units (premium adjustments, additional charges),
bookings (premium snapshot, discounts) and the pricing service, which turns
them into a fully itemized PriceBreakdown.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .money import ZERO

DISCOUNT_PREMIUM_TYPE = "discount"

GST = "gst"
STAMP_DUTY = "stamp_duty"
REGISTRATION = "registration"


@dataclass(frozen=True, slots=True)
class PremiumAdjustment:
    """
    Ad-hoc unit adjustment (corner unit, garden, renovation discount...).

    A positive ``percentage`` takes precedence over ``amount`` and is applied
    to the base subtotal. Type ``discount`` subtracts, every other type adds.
    """

    premium_type: str
    amount: Decimal = ZERO
    percentage: Optional[Decimal] = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class AdditionalCharge:
    name: str
    amount: Decimal
    description: str = ""


@dataclass(frozen=True, slots=True)
class PremiumLine:
    """A priced premium; the ``amount`` is always non-negative."""

    premium_type: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    description: str = ""

    @property
    def signed_amount(self) -> Decimal:
        if self.premium_type == DISCOUNT_PREMIUM_TYPE:
            return -self.amount
        return self.amount


class DiscountStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Discount:
    """
    A discount on a booking.

    Only APPROVED discounts reduce the price; pending and rejected ones are
    kept for audit and display.
    """

    discount_id: UUID
    discount_type: str
    amount: Decimal
    status: DiscountStatus
    percentage: Optional[Decimal] = None
    description: str = ""
    approval_id: Optional[UUID] = None
    created_by: Optional[UUID] = None

    @property
    def is_approved(self) -> bool:
        return self.status is DiscountStatus.APPROVED


@dataclass(frozen=True, slots=True)
class TaxLine:
    name: str
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    """
    Itemized price. ``total`` is reproducible from the lines:

        subtotal = base_amount + premium_total + additional_charges_total - discount_total
        total    = subtotal + tax_total
    """

    base_amount: Decimal
    premiums: Tuple[PremiumLine, ...]
    premium_total: Decimal
    additional_charges: Tuple[AdditionalCharge, ...]
    additional_charges_total: Decimal
    approved_discounts: Tuple[Discount, ...]
    discount_total: Decimal
    subtotal: Decimal
    taxes: Tuple[TaxLine, ...]
    tax_total: Decimal
    total: Decimal

    def tax(self, name: str) -> Optional[TaxLine]:
        for line in self.taxes:
            if line.name == name:
                return line
        return None
