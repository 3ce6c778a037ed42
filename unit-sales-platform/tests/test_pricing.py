"""
Tests for `services/pricing_service.py`.

Covers pricing rules:
- Floor rise (fixed and percentage) from the tower's rule, none below floor_start.
- View premiums and ad-hoc adjustments (percentage wins, discount type subtracts).
- Only approved discounts reduce the price.
- Taxes are rate% of the subtotal and added last.
- Computation is deterministic.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from domain.pricing import GST, REGISTRATION, STAMP_DUTY, AdditionalCharge, Discount, DiscountStatus, PremiumAdjustment
from domain.project import FloorRiseRule, OtherTaxRate, PremiumRules, Project, RuleKind, TaxRates, Tower, ViewPremium
from services.pricing_service import PricingInput, compute_price, price_unit

from conftest import PROJECT_ID, TENANT_ID, TOWER_ID, make_unit

GST_ONLY = TaxRates(gst_rate=Decimal("5"), stamp_duty_rate=Decimal("0"), registration_rate=Decimal("0"))


def _discount(amount: str, status: DiscountStatus) -> Discount:
    return Discount(
        discount_id=UUID(int=int(Decimal(amount))),
        discount_type="festive",
        amount=Decimal(amount),
        status=status,
    )


def test_worked_example_with_floor_premium_discount_and_gst() -> None:
    """5,000,000 base + 2% floor premium - 50,000 approved discount + 5% GST = 5,302,500."""

    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("5000000"),
            floor=7,
            premium_rules=PremiumRules(
                floor_rise=FloorRiseRule(kind=RuleKind.PERCENTAGE, value=Decimal("2"), floor_start=7)
            ),
            discounts=(
                _discount("50000", DiscountStatus.APPROVED),
                _discount("100000", DiscountStatus.PENDING),
                _discount("75000", DiscountStatus.REJECTED),
            ),
            tax_rates=GST_ONLY,
        )
    )

    assert breakdown.base_amount == Decimal("5000000.00")
    assert breakdown.premium_total == Decimal("100000.00")
    assert breakdown.discount_total == Decimal("50000.00")
    assert len(breakdown.approved_discounts) == 1
    assert breakdown.subtotal == Decimal("5050000.00")
    assert breakdown.tax(GST).amount == Decimal("252500.00")
    assert breakdown.total == Decimal("5302500.00")


def test_fixed_floor_rise_scales_with_area_and_floors_climbed() -> None:
    """Fixed rule: value x area x (floor - floor_start + 1)."""

    rules = PremiumRules(floor_rise=FloorRiseRule(kind=RuleKind.FIXED, value=Decimal("50"), floor_start=2))
    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("5000"),
            chargeable_area=Decimal("1000"),
            floor=4,
            premium_rules=rules,
            tax_rates=GST_ONLY,
        )
    )

    assert breakdown.premiums[0].premium_type == "floor_rise"
    assert breakdown.premium_total == Decimal("150000.00")


def test_no_floor_rise_below_floor_start() -> None:
    rules = PremiumRules(floor_rise=FloorRiseRule(kind=RuleKind.FIXED, value=Decimal("50"), floor_start=5))
    breakdown = compute_price(
        PricingInput(base_price=Decimal("1000000"), floor=3, premium_rules=rules, tax_rates=GST_ONLY)
    )

    assert breakdown.premiums == ()
    assert breakdown.premium_total == Decimal("0")


def test_view_premiums_are_percentages_of_base_and_unknown_views_are_ignored() -> None:
    rules = PremiumRules(
        view_premiums=(
            ViewPremium(view="lake", percentage=Decimal("3")),
            ViewPremium(view="garden", percentage=Decimal("1.5")),
        )
    )
    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("2000000"),
            views=("lake", "garden", "road"),
            premium_rules=rules,
            tax_rates=GST_ONLY,
        )
    )

    assert [p.description for p in breakdown.premiums] == ["lake view", "garden view"]
    assert breakdown.premium_total == Decimal("90000.00")


def test_adjustment_percentage_wins_and_discount_type_subtracts() -> None:
    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("1000000"),
            premium_adjustments=(
                PremiumAdjustment("corner", amount=Decimal("99999"), percentage=Decimal("2")),
                PremiumAdjustment("discount", amount=Decimal("5000")),
            ),
            tax_rates=GST_ONLY,
        )
    )

    assert breakdown.premiums[0].amount == Decimal("20000.00")
    assert breakdown.premium_total == Decimal("15000.00")
    assert breakdown.subtotal == Decimal("1015000.00")


def test_taxes_apply_to_subtotal_including_charges() -> None:
    """Every tax is rate% of base + premiums + charges - approved discounts."""

    rates = TaxRates(other_taxes=(OtherTaxRate(name="cess", rate=Decimal("0.5")),))
    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("1000000"),
            additional_charges=(AdditionalCharge("club membership", Decimal("100000")),),
            tax_rates=rates,
        )
    )

    assert breakdown.subtotal == Decimal("1100000.00")
    assert breakdown.tax(GST).amount == Decimal("55000.00")
    assert breakdown.tax(STAMP_DUTY).amount == Decimal("55000.00")
    assert breakdown.tax(REGISTRATION).amount == Decimal("11000.00")
    assert breakdown.tax("cess").amount == Decimal("5500.00")
    assert breakdown.tax_total == Decimal("126500.00")
    assert breakdown.total == Decimal("1226500.00")


def test_breakdown_total_reproduces_from_its_lines() -> None:
    breakdown = compute_price(
        PricingInput(
            base_price=Decimal("3333.33"),
            chargeable_area=Decimal("1234.5"),
            premium_adjustments=(PremiumAdjustment("garden", percentage=Decimal("1.25")),),
            discounts=(_discount("12345", DiscountStatus.APPROVED),),
        )
    )

    expected_subtotal = (
        breakdown.base_amount
        + breakdown.premium_total
        + breakdown.additional_charges_total
        - breakdown.discount_total
    )
    assert breakdown.subtotal == expected_subtotal
    assert breakdown.total == breakdown.subtotal + sum(t.amount for t in breakdown.taxes)


def test_compute_price_is_deterministic() -> None:
    data = PricingInput(
        base_price=Decimal("5000"),
        chargeable_area=Decimal("1000"),
        premium_adjustments=(PremiumAdjustment("corner", percentage=Decimal("1")),),
    )

    assert compute_price(data) == compute_price(data)


def test_price_unit_uses_super_built_up_area_and_tower_rules() -> None:
    unit = make_unit(floor=3, views=("lake",))
    tower = Tower(
        tower_id=TOWER_ID,
        tenant_id=TENANT_ID,
        project_id=PROJECT_ID,
        name="Tower A",
        premium_rules=PremiumRules(
            floor_rise=FloorRiseRule(kind=RuleKind.FIXED, value=Decimal("20"), floor_start=1),
            view_premiums=(ViewPremium(view="lake", percentage=Decimal("2")),),
        ),
    )
    project = Project(project_id=PROJECT_ID, tenant_id=TENANT_ID, name="Lakeside", tax_rates=GST_ONLY)

    breakdown = price_unit(unit, tower, project)

    assert breakdown.base_amount == Decimal("5000000.00")
    # 20 x 1000 x 3 floors + 2% of base
    assert breakdown.premium_total == Decimal("160000.00")
    assert breakdown.total == Decimal("5418000.00")
