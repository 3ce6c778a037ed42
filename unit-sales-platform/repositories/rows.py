"""
Row codecs between domain entities and Supabase rows.

Scalar columns map one-to-one; nested value objects (premiums, discounts,
approval chains, installments, change history) are stored in JSON columns.
Decimals travel as strings so no precision is lost on the way through
PostgREST.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from domain.approval import (
    Approval,
    ApprovalLevel,
    ApprovalStatus,
    ApprovalType,
    EntityType,
    LevelStatus,
)
from domain.booking import Booking, BookingNote, BookingStatus, CancellationRecord
from domain.lead import CustomerSnapshot, Lead, LeadStatus
from domain.payment_schedule import (
    ChangeHistoryEntry,
    DueTrigger,
    Installment,
    InstallmentStatus,
    InstallmentValues,
    OffsetUnit,
    PaymentSchedule,
    Ratification,
    RedistributedInstallment,
    TriggerOffset,
)
from domain.payment_schedule_template import PaymentScheduleTemplate, TemplateInstallment
from domain.pricing import (
    AdditionalCharge,
    Discount,
    DiscountStatus,
    PremiumAdjustment,
    PremiumLine,
    PriceBreakdown,
    TaxLine,
)
from domain.project import (
    FloorRiseRule,
    OtherTaxRate,
    PremiumRules,
    Project,
    RuleKind,
    TaxRates,
    Tower,
    ViewPremium,
)
from domain.time import parse_utc_datetime, to_iso_utc
from domain.unit import Unit, UnitStatus

Row = Dict[str, Any]


def _date_str(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _opt_dec(value: Any) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _uuid(value: Any) -> UUID:
    return UUID(str(value))


def _opt_uuid(value: Any) -> Optional[UUID]:
    return None if value is None else UUID(str(value))


def _uuid_str(value: Optional[UUID]) -> Optional[str]:
    return None if value is None else str(value)


# Price building blocks


def adjustment_to_json(item: PremiumAdjustment) -> Row:
    return {
        "premium_type": item.premium_type,
        "amount": str(item.amount),
        "percentage": _dec_str(item.percentage),
        "description": item.description,
    }


def json_to_adjustment(data: Mapping[str, Any]) -> PremiumAdjustment:
    return PremiumAdjustment(
        premium_type=str(data["premium_type"]),
        amount=_dec(data.get("amount", "0")),
        percentage=_opt_dec(data.get("percentage")),
        description=data.get("description") or "",
    )


def premium_to_json(item: PremiumLine) -> Row:
    return {
        "premium_type": item.premium_type,
        "amount": str(item.amount),
        "percentage": _dec_str(item.percentage),
        "description": item.description,
    }


def json_to_premium(data: Mapping[str, Any]) -> PremiumLine:
    return PremiumLine(
        premium_type=str(data["premium_type"]),
        amount=_dec(data["amount"]),
        percentage=_opt_dec(data.get("percentage")),
        description=data.get("description") or "",
    )


def charge_to_json(item: AdditionalCharge) -> Row:
    return {"name": item.name, "amount": str(item.amount), "description": item.description}


def json_to_charge(data: Mapping[str, Any]) -> AdditionalCharge:
    return AdditionalCharge(
        name=str(data["name"]),
        amount=_dec(data["amount"]),
        description=data.get("description") or "",
    )


def discount_to_json(item: Discount) -> Row:
    return {
        "discount_id": str(item.discount_id),
        "discount_type": item.discount_type,
        "amount": str(item.amount),
        "status": item.status.value,
        "percentage": _dec_str(item.percentage),
        "description": item.description,
        "approval_id": _uuid_str(item.approval_id),
        "created_by": _uuid_str(item.created_by),
    }


def json_to_discount(data: Mapping[str, Any]) -> Discount:
    return Discount(
        discount_id=_uuid(data["discount_id"]),
        discount_type=str(data["discount_type"]),
        amount=_dec(data["amount"]),
        status=DiscountStatus(str(data["status"])),
        percentage=_opt_dec(data.get("percentage")),
        description=data.get("description") or "",
        approval_id=_opt_uuid(data.get("approval_id")),
        created_by=_opt_uuid(data.get("created_by")),
    )


def tax_rates_to_json(rates: TaxRates) -> Row:
    return {
        "gst_rate": str(rates.gst_rate),
        "stamp_duty_rate": str(rates.stamp_duty_rate),
        "registration_rate": str(rates.registration_rate),
        "other_taxes": [{"name": t.name, "rate": str(t.rate)} for t in rates.other_taxes],
    }


def json_to_tax_rates(data: Optional[Mapping[str, Any]]) -> TaxRates:
    if not data:
        return TaxRates()
    return TaxRates(
        gst_rate=_dec(data.get("gst_rate", "5")),
        stamp_duty_rate=_dec(data.get("stamp_duty_rate", "5")),
        registration_rate=_dec(data.get("registration_rate", "1")),
        other_taxes=tuple(
            OtherTaxRate(name=str(t["name"]), rate=_dec(t["rate"]))
            for t in data.get("other_taxes") or []
        ),
    )


def breakdown_to_json(breakdown: PriceBreakdown) -> Row:
    return {
        "base_amount": str(breakdown.base_amount),
        "premiums": [premium_to_json(p) for p in breakdown.premiums],
        "premium_total": str(breakdown.premium_total),
        "additional_charges": [charge_to_json(c) for c in breakdown.additional_charges],
        "additional_charges_total": str(breakdown.additional_charges_total),
        "approved_discounts": [discount_to_json(d) for d in breakdown.approved_discounts],
        "discount_total": str(breakdown.discount_total),
        "subtotal": str(breakdown.subtotal),
        "taxes": [
            {"name": t.name, "rate": str(t.rate), "amount": str(t.amount)}
            for t in breakdown.taxes
        ],
        "tax_total": str(breakdown.tax_total),
        "total": str(breakdown.total),
    }


def json_to_breakdown(data: Mapping[str, Any]) -> PriceBreakdown:
    return PriceBreakdown(
        base_amount=_dec(data["base_amount"]),
        premiums=tuple(json_to_premium(p) for p in data.get("premiums") or []),
        premium_total=_dec(data["premium_total"]),
        additional_charges=tuple(json_to_charge(c) for c in data.get("additional_charges") or []),
        additional_charges_total=_dec(data["additional_charges_total"]),
        approved_discounts=tuple(
            json_to_discount(d) for d in data.get("approved_discounts") or []
        ),
        discount_total=_dec(data["discount_total"]),
        subtotal=_dec(data["subtotal"]),
        taxes=tuple(
            TaxLine(name=str(t["name"]), rate=_dec(t["rate"]), amount=_dec(t["amount"]))
            for t in data.get("taxes") or []
        ),
        tax_total=_dec(data["tax_total"]),
        total=_dec(data["total"]),
    )


# Inventory


def unit_to_row(unit: Unit) -> Row:
    return {
        "unit_id": str(unit.unit_id),
        "tenant_id": str(unit.tenant_id),
        "project_id": str(unit.project_id),
        "tower_id": str(unit.tower_id),
        "number": unit.number,
        "floor": unit.floor,
        "unit_type": unit.unit_type,
        "carpet_area": str(unit.carpet_area),
        "built_up_area": str(unit.built_up_area),
        "super_built_up_area": str(unit.super_built_up_area),
        "base_price": str(unit.base_price),
        "status": unit.status.value,
        "views": list(unit.views),
        "premium_adjustments": [adjustment_to_json(a) for a in unit.premium_adjustments],
        "additional_charges": [charge_to_json(c) for c in unit.additional_charges],
        "locked_by": _uuid_str(unit.locked_by),
        "locked_until_utc": to_iso_utc(unit.locked_until, name="locked_until"),
        "booking_id": _uuid_str(unit.booking_id),
        "version": unit.version,
    }


def row_to_unit(row: Mapping[str, Any]) -> Unit:
    return Unit(
        unit_id=_uuid(row["unit_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        project_id=_uuid(row["project_id"]),
        tower_id=_uuid(row["tower_id"]),
        number=str(row["number"]),
        floor=int(row["floor"]),
        unit_type=str(row["unit_type"]),
        carpet_area=_dec(row["carpet_area"]),
        built_up_area=_dec(row["built_up_area"]),
        super_built_up_area=_dec(row["super_built_up_area"]),
        base_price=_dec(row["base_price"]),
        status=UnitStatus(str(row["status"])),
        views=tuple(row.get("views") or ()),
        premium_adjustments=tuple(
            json_to_adjustment(a) for a in row.get("premium_adjustments") or []
        ),
        additional_charges=tuple(json_to_charge(c) for c in row.get("additional_charges") or []),
        locked_by=_opt_uuid(row.get("locked_by")),
        locked_until=parse_utc_datetime(row.get("locked_until_utc")),
        booking_id=_opt_uuid(row.get("booking_id")),
        version=int(row.get("version") or 0),
    )


def row_to_project(row: Mapping[str, Any]) -> Project:
    return Project(
        project_id=_uuid(row["project_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        name=str(row["name"]),
        tax_rates=json_to_tax_rates(row.get("tax_rates")),
    )


def row_to_tower(row: Mapping[str, Any]) -> Tower:
    rules = row.get("premium_rules") or {}
    floor_rise = rules.get("floor_rise")
    return Tower(
        tower_id=_uuid(row["tower_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        project_id=_uuid(row["project_id"]),
        name=str(row["name"]),
        premium_rules=PremiumRules(
            floor_rise=(
                FloorRiseRule(
                    kind=RuleKind(str(floor_rise["kind"])),
                    value=_dec(floor_rise["value"]),
                    floor_start=int(floor_rise.get("floor_start", 1)),
                )
                if floor_rise
                else None
            ),
            view_premiums=tuple(
                ViewPremium(view=str(v["view"]), percentage=_dec(v["percentage"]))
                for v in rules.get("view_premiums") or []
            ),
        ),
    )


def row_to_lead(row: Mapping[str, Any]) -> Lead:
    return Lead(
        lead_id=_uuid(row["lead_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        full_name=str(row.get("full_name") or ""),
        status=LeadStatus(str(row.get("status") or LeadStatus.NEW.value)),
        email=row.get("email"),
        phone=row.get("phone"),
    )


# Bookings


def booking_to_row(booking: Booking) -> Row:
    cancellation = booking.cancellation
    return {
        "booking_id": str(booking.booking_id),
        "tenant_id": str(booking.tenant_id),
        "booking_number": booking.booking_number,
        "lead_id": str(booking.lead_id),
        "customer": {
            "name": booking.customer.name,
            "email": booking.customer.email,
            "phone": booking.customer.phone,
        },
        "unit_id": str(booking.unit_id),
        "project_id": str(booking.project_id),
        "tower_id": str(booking.tower_id),
        "base_price": str(booking.base_price),
        "tax_rates": tax_rates_to_json(booking.tax_rates),
        "breakdown": breakdown_to_json(booking.breakdown),
        "total_booking_amount": str(booking.total_booking_amount),
        "status": booking.status.value,
        "premiums": [premium_to_json(p) for p in booking.premiums],
        "discounts": [discount_to_json(d) for d in booking.discounts],
        "additional_charges": [charge_to_json(c) for c in booking.additional_charges],
        "notes": [
            {
                "content": n.content,
                "created_by": str(n.created_by),
                "created_at": to_iso_utc(n.created_at, name="note.created_at"),
            }
            for n in booking.notes
        ],
        "cancellation": (
            {
                "date": to_iso_utc(cancellation.date, name="cancellation.date"),
                "reason": cancellation.reason,
                "requested_by": str(cancellation.requested_by),
                "approved_by": str(cancellation.approved_by),
            }
            if cancellation is not None
            else None
        ),
        "payment_schedule_id": _uuid_str(booking.payment_schedule_id),
        "created_by": str(booking.created_by),
        "created_at_utc": to_iso_utc(booking.created_at, name="created_at"),
        "updated_by": _uuid_str(booking.updated_by),
        "updated_at_utc": to_iso_utc(booking.updated_at, name="updated_at"),
        "version": booking.version,
    }


def row_to_booking(row: Mapping[str, Any]) -> Booking:
    customer = row.get("customer") or {}
    cancellation = row.get("cancellation")
    return Booking(
        booking_id=_uuid(row["booking_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        booking_number=str(row["booking_number"]),
        lead_id=_uuid(row["lead_id"]),
        customer=CustomerSnapshot(
            name=str(customer.get("name") or ""),
            email=customer.get("email"),
            phone=customer.get("phone"),
        ),
        unit_id=_uuid(row["unit_id"]),
        project_id=_uuid(row["project_id"]),
        tower_id=_uuid(row["tower_id"]),
        base_price=_dec(row["base_price"]),
        tax_rates=json_to_tax_rates(row.get("tax_rates")),
        breakdown=json_to_breakdown(row["breakdown"]),
        total_booking_amount=_dec(row["total_booking_amount"]),
        status=BookingStatus(str(row["status"])),
        premiums=tuple(json_to_premium(p) for p in row.get("premiums") or []),
        discounts=tuple(json_to_discount(d) for d in row.get("discounts") or []),
        additional_charges=tuple(json_to_charge(c) for c in row.get("additional_charges") or []),
        notes=tuple(
            BookingNote(
                content=str(n["content"]),
                created_by=_uuid(n["created_by"]),
                created_at=parse_utc_datetime(n["created_at"]),
            )
            for n in row.get("notes") or []
        ),
        cancellation=(
            CancellationRecord(
                date=parse_utc_datetime(cancellation["date"]),
                reason=str(cancellation["reason"]),
                requested_by=_uuid(cancellation["requested_by"]),
                approved_by=_uuid(cancellation["approved_by"]),
            )
            if cancellation
            else None
        ),
        payment_schedule_id=_opt_uuid(row.get("payment_schedule_id")),
        created_by=_uuid(row["created_by"]),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_by=_opt_uuid(row.get("updated_by")),
        updated_at=parse_utc_datetime(row.get("updated_at_utc")),
        version=int(row.get("version") or 0),
    )


# Approvals


def approval_to_row(approval: Approval) -> Row:
    return {
        "approval_id": str(approval.approval_id),
        "tenant_id": str(approval.tenant_id),
        "approval_type": approval.approval_type.value,
        "entity_type": approval.entity_type.value,
        "entity_id": str(approval.entity_id),
        "requested_by": str(approval.requested_by),
        "amount": _dec_str(approval.amount),
        "percentage": _dec_str(approval.percentage),
        "justification": approval.justification,
        "status": approval.status.value,
        "current_level": approval.current_level,
        "chain": [
            {
                "role": level.role,
                "min_amount": str(level.min_amount),
                "max_amount": _dec_str(level.max_amount),
                "assigned_to": _uuid_str(level.assigned_to),
                "status": level.status.value,
                "comment": level.comment,
                "decided_by": _uuid_str(level.decided_by),
                "decided_at": to_iso_utc(level.decided_at, name="decided_at"),
            }
            for level in approval.chain
        ],
        "created_at_utc": to_iso_utc(approval.created_at, name="created_at"),
        "updated_by": _uuid_str(approval.updated_by),
        "updated_at_utc": to_iso_utc(approval.updated_at, name="updated_at"),
        "version": approval.version,
    }


def row_to_approval(row: Mapping[str, Any]) -> Approval:
    return Approval(
        approval_id=_uuid(row["approval_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        approval_type=ApprovalType(str(row["approval_type"])),
        entity_type=EntityType(str(row["entity_type"])),
        entity_id=_uuid(row["entity_id"]),
        requested_by=_uuid(row["requested_by"]),
        amount=_opt_dec(row.get("amount")),
        percentage=_opt_dec(row.get("percentage")),
        justification=row.get("justification") or "",
        status=ApprovalStatus(str(row["status"])),
        current_level=int(row.get("current_level") or 0),
        chain=tuple(
            ApprovalLevel(
                role=str(level["role"]),
                min_amount=_dec(level.get("min_amount", "0")),
                max_amount=_opt_dec(level.get("max_amount")),
                assigned_to=_opt_uuid(level.get("assigned_to")),
                status=LevelStatus(str(level.get("status") or LevelStatus.PENDING.value)),
                comment=level.get("comment"),
                decided_by=_opt_uuid(level.get("decided_by")),
                decided_at=parse_utc_datetime(level.get("decided_at")),
            )
            for level in row.get("chain") or []
        ),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_by=_opt_uuid(row.get("updated_by")),
        updated_at=parse_utc_datetime(row.get("updated_at_utc")),
        version=int(row.get("version") or 0),
    )


# Payment schedules


def _offset_to_json(offset: TriggerOffset) -> Row:
    return {"value": offset.value, "unit": offset.unit.value}


def _json_to_offset(data: Optional[Mapping[str, Any]]) -> TriggerOffset:
    if not data:
        return TriggerOffset()
    return TriggerOffset(value=int(data.get("value", 0)), unit=OffsetUnit(str(data.get("unit", "days"))))


def installment_to_json(item: Installment) -> Row:
    return {
        "name": item.name,
        "description": item.description,
        "amount": str(item.amount),
        "percentage": _dec_str(item.percentage),
        "percentage_based": item.percentage_based,
        "due_trigger": item.due_trigger.value,
        "trigger_offset": _offset_to_json(item.trigger_offset),
        "trigger_milestone": item.trigger_milestone,
        "due_date": _date_str(item.due_date),
        "status": item.status.value,
        "amount_paid": str(item.amount_paid),
        "payment_date": to_iso_utc(item.payment_date, name="payment_date"),
        "payment_method": item.payment_method,
        "reference": item.reference,
        "editable": item.editable,
    }


def json_to_installment(data: Mapping[str, Any]) -> Installment:
    return Installment(
        name=str(data["name"]),
        description=data.get("description") or "",
        amount=_dec(data["amount"]),
        percentage=_opt_dec(data.get("percentage")),
        percentage_based=bool(data.get("percentage_based", True)),
        due_trigger=DueTrigger(str(data.get("due_trigger") or DueTrigger.FIXED_DATE.value)),
        trigger_offset=_json_to_offset(data.get("trigger_offset")),
        trigger_milestone=data.get("trigger_milestone"),
        due_date=_parse_date(data.get("due_date")),
        status=InstallmentStatus(str(data.get("status") or InstallmentStatus.UPCOMING.value)),
        amount_paid=_dec(data.get("amount_paid", "0")),
        payment_date=parse_utc_datetime(data.get("payment_date")),
        payment_method=data.get("payment_method"),
        reference=data.get("reference"),
        editable=bool(data.get("editable", True)),
    )


def _values_to_json(values: InstallmentValues) -> Row:
    return {
        "amount": _dec_str(values.amount),
        "percentage": _dec_str(values.percentage),
        "due_date": _date_str(values.due_date),
    }


def _json_to_values(data: Mapping[str, Any]) -> InstallmentValues:
    return InstallmentValues(
        amount=_opt_dec(data.get("amount")),
        percentage=_opt_dec(data.get("percentage")),
        due_date=_parse_date(data.get("due_date")),
    )


def _history_to_json(entry: ChangeHistoryEntry) -> Row:
    return {
        "changed_by": str(entry.changed_by),
        "changed_at": to_iso_utc(entry.changed_at, name="changed_at"),
        "installment_index": entry.installment_index,
        "previous_values": _values_to_json(entry.previous_values),
        "new_values": _values_to_json(entry.new_values),
        "reason": entry.reason,
        "approval_id": _uuid_str(entry.approval_id),
        "ratification": entry.ratification.value,
        "redistributed": [
            {
                "index": r.index,
                "previous_amount": str(r.previous_amount),
                "previous_percentage": _dec_str(r.previous_percentage),
            }
            for r in entry.redistributed
        ],
    }


def _json_to_history(data: Mapping[str, Any]) -> ChangeHistoryEntry:
    return ChangeHistoryEntry(
        changed_by=_uuid(data["changed_by"]),
        changed_at=parse_utc_datetime(data["changed_at"]),
        installment_index=int(data["installment_index"]),
        previous_values=_json_to_values(data.get("previous_values") or {}),
        new_values=_json_to_values(data.get("new_values") or {}),
        reason=data.get("reason") or "",
        approval_id=_opt_uuid(data.get("approval_id")),
        ratification=Ratification(str(data.get("ratification") or "not_required")),
        redistributed=tuple(
            RedistributedInstallment(
                index=int(r["index"]),
                previous_amount=_dec(r["previous_amount"]),
                previous_percentage=_opt_dec(r.get("previous_percentage")),
            )
            for r in data.get("redistributed") or []
        ),
    )


def schedule_to_row(schedule: PaymentSchedule) -> Row:
    return {
        "schedule_id": str(schedule.schedule_id),
        "tenant_id": str(schedule.tenant_id),
        "booking_id": str(schedule.booking_id),
        "name": schedule.name,
        "description": schedule.description,
        "total_amount": str(schedule.total_amount),
        "installments": [installment_to_json(i) for i in schedule.installments],
        "change_history": [_history_to_json(e) for e in schedule.change_history],
        "created_by": str(schedule.created_by),
        "created_at_utc": to_iso_utc(schedule.created_at, name="created_at"),
        "updated_by": _uuid_str(schedule.updated_by),
        "updated_at_utc": to_iso_utc(schedule.updated_at, name="updated_at"),
        "version": schedule.version,
    }


def row_to_schedule(row: Mapping[str, Any]) -> PaymentSchedule:
    return PaymentSchedule(
        schedule_id=_uuid(row["schedule_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        booking_id=_uuid(row["booking_id"]),
        name=str(row["name"]),
        description=row.get("description") or "",
        total_amount=_dec(row["total_amount"]),
        installments=tuple(json_to_installment(i) for i in row.get("installments") or []),
        change_history=tuple(_json_to_history(e) for e in row.get("change_history") or []),
        created_by=_uuid(row["created_by"]),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_by=_opt_uuid(row.get("updated_by")),
        updated_at=parse_utc_datetime(row.get("updated_at_utc")),
        version=int(row.get("version") or 0),
    )


def template_to_row(template: PaymentScheduleTemplate) -> Row:
    return {
        "template_id": str(template.template_id),
        "tenant_id": str(template.tenant_id),
        "project_id": _uuid_str(template.project_id),
        "name": template.name,
        "description": template.description,
        "is_default": template.is_default,
        "installments": [
            {
                "name": i.name,
                "description": i.description,
                "percentage": _dec_str(i.percentage),
                "amount": _dec_str(i.amount),
                "due_trigger": i.due_trigger.value,
                "trigger_offset": _offset_to_json(i.trigger_offset),
                "trigger_milestone": i.trigger_milestone,
                "fixed_date": _date_str(i.fixed_date),
            }
            for i in template.installments
        ],
        "created_by": str(template.created_by),
        "created_at_utc": to_iso_utc(template.created_at, name="created_at"),
        "updated_by": _uuid_str(template.updated_by),
        "updated_at_utc": to_iso_utc(template.updated_at, name="updated_at"),
        "version": template.version,
    }


def row_to_template(row: Mapping[str, Any]) -> PaymentScheduleTemplate:
    return PaymentScheduleTemplate(
        template_id=_uuid(row["template_id"]),
        tenant_id=_uuid(row["tenant_id"]),
        project_id=_opt_uuid(row.get("project_id")),
        name=str(row["name"]),
        description=row.get("description") or "",
        is_default=bool(row.get("is_default", False)),
        installments=tuple(
            TemplateInstallment(
                name=str(i["name"]),
                description=i.get("description") or "",
                percentage=_opt_dec(i.get("percentage")),
                amount=_opt_dec(i.get("amount")),
                due_trigger=DueTrigger(str(i.get("due_trigger") or DueTrigger.BOOKING_DATE.value)),
                trigger_offset=_json_to_offset(i.get("trigger_offset")),
                trigger_milestone=i.get("trigger_milestone"),
                fixed_date=_parse_date(i.get("fixed_date")),
            )
            for i in row.get("installments") or []
        ),
        created_by=_uuid(row["created_by"]),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_by=_opt_uuid(row.get("updated_by")),
        updated_at=parse_utc_datetime(row.get("updated_at_utc")),
        version=int(row.get("version") or 0),
    )
