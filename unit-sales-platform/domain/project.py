"""
Domain: inventory context a unit is priced against.

Projects carry the tax rates applied to bookings; towers carry the premium
rules (floor rise and view premiums). Both are created by inventory setup,
which lives outside this core; here they are read-only inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID


class RuleKind(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True, slots=True)
class FloorRiseRule:
    """
    Floor rise premium.

    Floors below ``floor_start`` carry no premium. From ``floor_start`` up,
    the premium scales with the number of floors climbed:
    - FIXED: value per unit area per floor
    - PERCENTAGE: value percent of the base subtotal per floor
    """

    kind: RuleKind
    value: Decimal
    floor_start: int = 1

    def floors_above_start(self, floor: int) -> int:
        if floor < self.floor_start:
            return 0
        return floor - self.floor_start + 1


@dataclass(frozen=True, slots=True)
class ViewPremium:
    view: str
    percentage: Decimal


@dataclass(frozen=True, slots=True)
class PremiumRules:
    floor_rise: Optional[FloorRiseRule] = None
    view_premiums: Tuple[ViewPremium, ...] = ()

    def view_percentage(self, view: str) -> Decimal:
        for premium in self.view_premiums:
            if premium.view == view:
                return premium.percentage
        return Decimal("0")


@dataclass(frozen=True, slots=True)
class OtherTaxRate:
    name: str
    rate: Decimal


@dataclass(frozen=True, slots=True)
class TaxRates:
    """Percent rates applied to the pre-tax subtotal."""

    gst_rate: Decimal = Decimal("5")
    stamp_duty_rate: Decimal = Decimal("5")
    registration_rate: Decimal = Decimal("1")
    other_taxes: Tuple[OtherTaxRate, ...] = ()


@dataclass(frozen=True, slots=True)
class Project:
    project_id: UUID
    tenant_id: UUID
    name: str
    tax_rates: TaxRates = field(default_factory=TaxRates)


@dataclass(frozen=True, slots=True)
class Tower:
    tower_id: UUID
    tenant_id: UUID
    project_id: UUID
    name: str
    premium_rules: PremiumRules = field(default_factory=PremiumRules)
