"""
Pricing service: deterministic price computation for units and bookings.

Pure functions only. Given the same input, ``compute_price`` always returns
the same itemized PriceBreakdown, so a booking total can be reproduced at any
time for audits and retries.

Order of evaluation:
1. base = base_price x chargeable_area
2. premiums (floor rise, views, ad-hoc adjustments, applied premium lines)
3. additional charges
4. approved discounts (pending/rejected ones are ignored)
5. subtotal = base + premiums + charges - approved discounts
6. taxes = rate% x subtotal for each tax, added last
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from domain.money import ZERO, money, percent_of, total
from domain.pricing import (
    GST,
    REGISTRATION,
    STAMP_DUTY,
    AdditionalCharge,
    Discount,
    PremiumAdjustment,
    PremiumLine,
    PriceBreakdown,
    TaxLine,
)
from domain.project import PremiumRules, Project, RuleKind, TaxRates, Tower
from domain.unit import Unit

FLOOR_RISE_PREMIUM_TYPE = "floor_rise"
VIEW_PREMIUM_TYPE = "view"


@dataclass(frozen=True, slots=True)
class PricingInput:
    """
    Everything the price depends on.

    premium_rules/floor/views: tower rules evaluated for a unit quote.
    premium_adjustments: ad-hoc adjustments still to be priced.
    applied_premiums: premium lines already fixed on a booking; lines that
        carry a percentage are re-priced against the current base.
    """

    base_price: Decimal
    chargeable_area: Decimal = Decimal("1")
    floor: Optional[int] = None
    views: Tuple[str, ...] = ()
    premium_rules: Optional[PremiumRules] = None
    premium_adjustments: Tuple[PremiumAdjustment, ...] = ()
    applied_premiums: Tuple[PremiumLine, ...] = ()
    discounts: Tuple[Discount, ...] = ()
    additional_charges: Tuple[AdditionalCharge, ...] = ()
    tax_rates: TaxRates = TaxRates()


def _floor_rise_line(data: PricingInput, base_amount: Decimal) -> Optional[PremiumLine]:
    rules = data.premium_rules
    if rules is None or rules.floor_rise is None or data.floor is None:
        return None
    rule = rules.floor_rise
    floors = rule.floors_above_start(data.floor)
    if floors <= 0:
        return None

    description = f"Floor rise ({floors} floors from {rule.floor_start})"
    if rule.kind is RuleKind.FIXED:
        amount = money(rule.value * data.chargeable_area * floors)
        return PremiumLine(FLOOR_RISE_PREMIUM_TYPE, amount, description=description)
    rate = rule.value * floors
    return PremiumLine(
        FLOOR_RISE_PREMIUM_TYPE,
        percent_of(base_amount, rate),
        percentage=rate,
        description=description,
    )


def _view_lines(data: PricingInput, base_amount: Decimal) -> List[PremiumLine]:
    if data.premium_rules is None:
        return []
    lines = []
    for view in data.views:
        rate = data.premium_rules.view_percentage(view)
        if rate > ZERO:
            lines.append(
                PremiumLine(
                    VIEW_PREMIUM_TYPE,
                    percent_of(base_amount, rate),
                    percentage=rate,
                    description=f"{view} view",
                )
            )
    return lines


def price_adjustment(adjustment: PremiumAdjustment, base_amount: Decimal) -> PremiumLine:
    """A positive percentage wins over the fixed amount."""

    if adjustment.percentage is not None and adjustment.percentage > ZERO:
        amount = percent_of(base_amount, adjustment.percentage)
    else:
        amount = money(abs(adjustment.amount))
    return PremiumLine(
        adjustment.premium_type,
        amount,
        percentage=adjustment.percentage,
        description=adjustment.description,
    )


def _reprice(line: PremiumLine, base_amount: Decimal) -> PremiumLine:
    if line.percentage is not None and line.percentage > ZERO:
        return PremiumLine(
            line.premium_type,
            percent_of(base_amount, line.percentage),
            percentage=line.percentage,
            description=line.description,
        )
    return line


def _tax_lines(rates: TaxRates, subtotal: Decimal) -> Tuple[TaxLine, ...]:
    named = [
        (GST, rates.gst_rate),
        (STAMP_DUTY, rates.stamp_duty_rate),
        (REGISTRATION, rates.registration_rate),
    ] + [(other.name, other.rate) for other in rates.other_taxes]
    return tuple(TaxLine(name, rate, percent_of(subtotal, rate)) for name, rate in named)


def compute_price(data: PricingInput) -> PriceBreakdown:
    """
    Compute a fully itemized price breakdown.

    Example:
        >>> breakdown = compute_price(PricingInput(
        ...     base_price=Decimal("5000000"),
        ...     premium_adjustments=(PremiumAdjustment("floor", percentage=Decimal("2")),),
        ...     tax_rates=TaxRates(gst_rate=Decimal("5"), stamp_duty_rate=ZERO,
        ...                        registration_rate=ZERO),
        ... ))
        >>> breakdown.total
        Decimal('5355000.00')
    """

    base_amount = money(data.base_price * data.chargeable_area)

    premiums: List[PremiumLine] = []
    floor_line = _floor_rise_line(data, base_amount)
    if floor_line is not None:
        premiums.append(floor_line)
    premiums.extend(_view_lines(data, base_amount))
    premiums.extend(price_adjustment(a, base_amount) for a in data.premium_adjustments)
    premiums.extend(_reprice(line, base_amount) for line in data.applied_premiums)
    premium_total = total(p.signed_amount for p in premiums)

    charges = tuple(
        AdditionalCharge(c.name, money(c.amount), c.description) for c in data.additional_charges
    )
    charges_total = total(c.amount for c in charges)

    approved = tuple(d for d in data.discounts if d.is_approved)
    discount_total = total(money(d.amount) for d in approved)

    subtotal = base_amount + premium_total + charges_total - discount_total
    taxes = _tax_lines(data.tax_rates, subtotal)
    tax_total = total(t.amount for t in taxes)

    return PriceBreakdown(
        base_amount=base_amount,
        premiums=tuple(premiums),
        premium_total=premium_total,
        additional_charges=charges,
        additional_charges_total=charges_total,
        approved_discounts=approved,
        discount_total=discount_total,
        subtotal=subtotal,
        taxes=taxes,
        tax_total=tax_total,
        total=subtotal + tax_total,
    )


def price_unit(
    unit: Unit,
    tower: Tower,
    project: Project,
    *,
    discounts: Tuple[Discount, ...] = (),
) -> PriceBreakdown:
    """Quote a unit against its tower's premium rules and project's tax rates."""

    return compute_price(
        PricingInput(
            base_price=unit.base_price,
            chargeable_area=unit.chargeable_area,
            floor=unit.floor,
            views=unit.views,
            premium_rules=tower.premium_rules,
            premium_adjustments=unit.premium_adjustments,
            discounts=discounts,
            additional_charges=unit.additional_charges,
            tax_rates=project.tax_rates,
        )
    )


__all__ = [
    "FLOOR_RISE_PREMIUM_TYPE",
    "VIEW_PREMIUM_TYPE",
    "PricingInput",
    "compute_price",
    "price_adjustment",
    "price_unit",
]
