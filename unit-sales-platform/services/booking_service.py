"""
Booking orchestrator.

Composes the unit lifecycle, the pricing engine and the approval workflow:

- create_booking reserves the unit, writes the booking and converts the lead
  as one saga; a failure after the unit was reserved undoes the earlier steps
  and re-raises the original error.
- every mutation recomputes the booking total through the pricing engine
  before it is persisted (recompute-then-persist, never a save hook).
- discounts above the actor's ceiling, and cancellations by actors without
  override authority, open an approval instead of applying directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from domain.actor import Actor
from domain.approval import Approval, ApprovalStatus, ApprovalType, EntityType
from domain.booking import (
    Booking,
    BookingNote,
    BookingStatus,
    CancellationRecord,
    can_transition,
    format_booking_number,
)
from domain.clock import Clock
from domain.errors import ConflictError, NotFoundError, StaleVersionError, ValidationError
from domain.lead import CustomerSnapshot
from domain.money import ZERO, money, percent_of, share_of
from domain.pricing import AdditionalCharge, Discount, DiscountStatus, PremiumAdjustment
from domain.unit import UnitStatus
from repositories.base import BookingRepository, LeadRepository, ProjectRepository
from services.approval_service import ApprovalWorkflow
from services.business_rules import BusinessRulesProvider, TenantBusinessRules
from services.pricing_service import PricingInput, compute_price, price_adjustment, price_unit
from services.unit_service import UnitLifecycle

logger = logging.getLogger(__name__)

_NUMBERING_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class DiscountRequest:
    """A discount to add; give exactly one of amount or percentage (of the booking total)."""

    discount_type: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    description: str = ""
    justification: str = ""


@dataclass(frozen=True, slots=True)
class BookingOverrides:
    """
    Optional inputs for create_booking.

    base_price: total base amount; defaults to rate x chargeable area.
    premium_adjustments: extra premiums on top of the tower and unit rules.
    additional_charges: replaces the unit's own charges when given.
    """

    base_price: Optional[Decimal] = None
    premium_adjustments: Tuple[PremiumAdjustment, ...] = ()
    additional_charges: Optional[Tuple[AdditionalCharge, ...]] = None
    discounts: Tuple[DiscountRequest, ...] = ()
    note: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BookingChanges:
    """Fields update_booking may replace; None leaves a field untouched."""

    base_price: Optional[Decimal] = None
    premium_adjustments: Optional[Tuple[PremiumAdjustment, ...]] = None
    additional_charges: Optional[Tuple[AdditionalCharge, ...]] = None


@dataclass(frozen=True, slots=True)
class DiscountOutcome:
    booking: Booking
    discount: Discount
    approval: Optional[Approval] = None

    @property
    def approval_required(self) -> bool:
        return self.approval is not None


@dataclass(frozen=True, slots=True)
class StatusChangeOutcome:
    booking: Booking
    approval: Optional[Approval] = None

    @property
    def approval_required(self) -> bool:
        return self.approval is not None


def recompute_total(booking: Booking) -> Booking:
    """Re-price a booking from its own premiums, approved discounts, charges and tax rates."""

    breakdown = compute_price(
        PricingInput(
            base_price=booking.base_price,
            applied_premiums=booking.premiums,
            discounts=booking.discounts,
            additional_charges=booking.additional_charges,
            tax_rates=booking.tax_rates,
        )
    )
    return replace(booking, breakdown=breakdown, total_booking_amount=breakdown.total)


def verify_total(booking: Booking) -> bool:
    """True when the stored total matches a fresh recomputation."""

    return recompute_total(booking).total_booking_amount == booking.total_booking_amount


def discount_needs_approval(
    actor: Actor,
    rules: TenantBusinessRules,
    amount: Decimal,
    percentage_of_total: Decimal,
) -> bool:
    if actor.has_role(*rules.discount_override_roles):
        return False
    if percentage_of_total > actor.effective_max_discount(rules.max_discount_percentage):
        return True
    return actor.approval_threshold is not None and amount > actor.approval_threshold


class BookingOrchestrator:
    def __init__(
        self,
        bookings: BookingRepository,
        leads: LeadRepository,
        projects: ProjectRepository,
        units: UnitLifecycle,
        approvals: ApprovalWorkflow,
        rules: BusinessRulesProvider,
        clock: Clock,
    ) -> None:
        self._bookings = bookings
        self._leads = leads
        self._projects = projects
        self._units = units
        self._approvals = approvals
        self._rules = rules
        self._clock = clock

    # Reads

    def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        actor.ensure_tenant(booking.tenant_id, "Booking")
        return booking

    # Writes

    def _persist(self, previous: Booking, updated: Booking, actor: Actor) -> Booking:
        updated = recompute_total(
            replace(updated, updated_by=actor.actor_id, updated_at=self._clock.now())
        )
        try:
            return self._bookings.update(updated, expected_version=previous.version)
        except StaleVersionError:
            logger.warning(
                "Booking changed concurrently",
                extra={"booking_id": str(previous.booking_id), "actor_id": str(actor.actor_id)},
            )
            raise

    def _price_discount(self, request: DiscountRequest, booking_total: Decimal) -> Decimal:
        if (request.amount is None) == (request.percentage is None):
            raise ValidationError("Specify exactly one of discount amount or percentage")
        if request.percentage is not None:
            if not (ZERO < request.percentage <= Decimal("100")):
                raise ValidationError("Discount percentage must be between 0 and 100")
            return percent_of(booking_total, request.percentage)
        amount = money(request.amount)
        if amount <= ZERO:
            raise ValidationError("Discount amount must be greater than zero")
        return amount

    def create_booking(
        self,
        lead_id: UUID,
        unit_id: UUID,
        actor: Actor,
        overrides: Optional[BookingOverrides] = None,
    ) -> Booking:
        """
        Create a booking for a lead on a unit.

        Steps:
        1. Resolve lead, unit, project and tower
        2. Require the unit to be available or validly locked
        3. Snapshot the customer and the project's tax rates
        4. Price the booking; pending discounts make it pending_approval
        5. Saga: book unit -> write booking -> convert lead -> open approvals

        Raises:
            NotFoundError: lead, unit, project or tower missing
            ForbiddenError: lead or unit belongs to another tenant
            ConflictError: unit not available
            ValidationError: malformed discount request
        """

        overrides = overrides or BookingOverrides()
        rules = self._rules.rules_for(actor.tenant_id)
        now = self._clock.now()

        lead = self._leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        actor.ensure_tenant(lead.tenant_id, "Lead")
        unit = self._units.get_unit(unit_id, actor)
        if unit.status not in (UnitStatus.AVAILABLE, UnitStatus.LOCKED):
            raise ConflictError(
                f"Unit is not available for booking. Current status: {unit.status.value}",
                unit_id=str(unit_id),
                status=unit.status.value,
            )

        project = self._projects.get_project(unit.project_id)
        if project is None:
            raise NotFoundError("Project", unit.project_id)
        tower = self._projects.get_tower(unit.tower_id)
        if tower is None:
            raise NotFoundError("Tower", unit.tower_id)

        quote = price_unit(unit, tower, project)
        base_price = money(overrides.base_price) if overrides.base_price is not None else quote.base_amount
        premiums = quote.premiums + tuple(
            price_adjustment(a, base_price) for a in overrides.premium_adjustments
        )
        charges = (
            overrides.additional_charges
            if overrides.additional_charges is not None
            else unit.additional_charges
        )

        booking_id = uuid4()
        sequence = self._bookings.count_for_month(actor.tenant_id, now.year, now.month) + 1
        booking = recompute_total(
            Booking(
                booking_id=booking_id,
                tenant_id=actor.tenant_id,
                booking_number=format_booking_number(now, sequence),
                lead_id=lead.lead_id,
                customer=CustomerSnapshot.from_lead(lead),
                unit_id=unit.unit_id,
                project_id=unit.project_id,
                tower_id=unit.tower_id,
                base_price=base_price,
                tax_rates=project.tax_rates,
                breakdown=quote,
                total_booking_amount=quote.total,
                status=BookingStatus.DRAFT,
                created_by=actor.actor_id,
                created_at=now,
                premiums=premiums,
                additional_charges=charges,
                notes=(
                    (BookingNote(overrides.note, actor.actor_id, now),) if overrides.note else ()
                ),
            )
        )

        discounts: List[Discount] = []
        approvals_to_open: List[Tuple[Discount, DiscountRequest, Decimal]] = []
        for request in overrides.discounts:
            amount = self._price_discount(request, booking.total_booking_amount)
            share = share_of(amount, booking.total_booking_amount)
            discount = Discount(
                discount_id=uuid4(),
                discount_type=request.discount_type,
                amount=amount,
                status=DiscountStatus.APPROVED,
                percentage=request.percentage,
                description=request.description,
                created_by=actor.actor_id,
            )
            if discount_needs_approval(actor, rules, amount, share):
                discount = replace(discount, status=DiscountStatus.PENDING, approval_id=uuid4())
                approvals_to_open.append((discount, request, share))
            discounts.append(discount)

        booking = recompute_total(
            replace(
                booking,
                discounts=tuple(discounts),
                status=BookingStatus.PENDING_APPROVAL if approvals_to_open else BookingStatus.DRAFT,
            )
        )

        unit_booked = False
        booking_written = False
        try:
            self._units.book(unit.unit_id, booking_id, actor)
            unit_booked = True
            booking = self._add_numbered(booking, sequence)
            booking_written = True
            self._leads.mark_converted(lead.lead_id)
            for discount, request, share in approvals_to_open:
                self._approvals.create_approval(
                    ApprovalType.DISCOUNT,
                    EntityType.BOOKING,
                    booking_id,
                    actor,
                    amount=discount.amount,
                    percentage=share,
                    justification=request.justification,
                    approval_id=discount.approval_id,
                )
        except Exception:
            logger.warning(
                "Booking creation failed; compensating",
                extra={
                    "booking_id": str(booking_id),
                    "unit_id": str(unit.unit_id),
                    "unit_booked": unit_booked,
                    "booking_written": booking_written,
                },
            )
            self._compensate_creation(booking_id, unit.unit_id, actor, unit_booked, booking_written)
            raise

        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking_id),
                "booking_number": booking.booking_number,
                "unit_id": str(unit.unit_id),
                "status": booking.status.value,
                "total": str(booking.total_booking_amount),
            },
        )
        return booking

    def _add_numbered(self, booking: Booking, sequence: int) -> Booking:
        """Insert a booking, moving to the next monthly sequence while its number is taken."""

        for _ in range(_NUMBERING_ATTEMPTS - 1):
            try:
                return self._bookings.add(booking)
            except ConflictError:
                logger.info(
                    "Booking number taken; retrying with the next sequence",
                    extra={"booking_id": str(booking.booking_id), "booking_number": booking.booking_number},
                )
            sequence = max(
                sequence + 1,
                self._bookings.count_for_month(
                    booking.tenant_id, booking.created_at.year, booking.created_at.month
                )
                + 1,
            )
            booking = replace(booking, booking_number=format_booking_number(booking.created_at, sequence))
        return self._bookings.add(booking)

    def _compensate_creation(
        self,
        booking_id: UUID,
        unit_id: UUID,
        actor: Actor,
        unit_booked: bool,
        booking_written: bool,
    ) -> None:
        if booking_written:
            try:
                self._bookings.remove(booking_id)
            except Exception:
                logger.exception("Failed to remove booking during compensation", extra={"booking_id": str(booking_id)})
        if unit_booked:
            try:
                self._units.release_booking(unit_id, booking_id, actor)
            except Exception:
                logger.exception("Failed to release unit during compensation", extra={"unit_id": str(unit_id)})

    def update_booking(self, booking_id: UUID, changes: BookingChanges, actor: Actor) -> Booking:
        """Replace base price, premiums or charges and re-price. Status, unit and tenant never change here."""

        booking = self.get_booking(booking_id, actor)
        if booking.is_terminal:
            raise ConflictError("Cancelled bookings cannot be modified", booking_id=str(booking_id))

        updated = booking
        if changes.base_price is not None:
            if changes.base_price <= ZERO:
                raise ValidationError("Base price must be greater than zero")
            updated = replace(updated, base_price=money(changes.base_price))
        if changes.premium_adjustments is not None:
            updated = replace(
                updated,
                premiums=tuple(
                    price_adjustment(a, updated.base_price) for a in changes.premium_adjustments
                ),
            )
        if changes.additional_charges is not None:
            updated = replace(updated, additional_charges=tuple(changes.additional_charges))

        stored = self._persist(booking, updated, actor)
        logger.info(
            "Booking updated",
            extra={"booking_id": str(booking_id), "total": str(stored.total_booking_amount)},
        )
        return stored

    def add_note(self, booking_id: UUID, content: str, actor: Actor) -> Booking:
        if not content or not content.strip():
            raise ValidationError("Note content is required")
        booking = self.get_booking(booking_id, actor)
        note = BookingNote(content.strip(), actor.actor_id, self._clock.now())
        return self._persist(booking, replace(booking, notes=booking.notes + (note,)), actor)

    def add_discount(self, booking_id: UUID, request: DiscountRequest, actor: Actor) -> DiscountOutcome:
        """
        Add a discount, routing it through approval when it exceeds the actor's ceiling.

        The ceiling is the actor's maximum discount percentage of the booking
        total (or the monetary approval threshold, when set). Roles with
        discount override authority never need approval.

        Returns:
            DiscountOutcome with the persisted booking; ``approval`` is set when
            the discount is pending.
        """

        booking = self.get_booking(booking_id, actor)
        if booking.is_terminal:
            raise ConflictError("Cannot add a discount to a cancelled booking", booking_id=str(booking_id))

        rules = self._rules.rules_for(booking.tenant_id)
        amount = self._price_discount(request, booking.total_booking_amount)
        share = share_of(amount, booking.total_booking_amount)
        needs_approval = discount_needs_approval(actor, rules, amount, share)

        discount = Discount(
            discount_id=uuid4(),
            discount_type=request.discount_type,
            amount=amount,
            status=DiscountStatus.PENDING if needs_approval else DiscountStatus.APPROVED,
            percentage=request.percentage,
            description=request.description,
            approval_id=uuid4() if needs_approval else None,
            created_by=actor.actor_id,
        )
        updated = replace(booking, discounts=booking.discounts + (discount,))
        if needs_approval and can_transition(updated.status, BookingStatus.PENDING_APPROVAL):
            updated = replace(updated, status=BookingStatus.PENDING_APPROVAL)

        stored = self._persist(booking, updated, actor)

        approval: Optional[Approval] = None
        if needs_approval:
            try:
                approval = self._approvals.create_approval(
                    ApprovalType.DISCOUNT,
                    EntityType.BOOKING,
                    booking_id,
                    actor,
                    amount=amount,
                    percentage=share,
                    justification=request.justification,
                    approval_id=discount.approval_id,
                )
            except Exception:
                logger.warning(
                    "Discount approval could not be opened; withdrawing discount",
                    extra={"booking_id": str(booking_id), "discount_id": str(discount.discount_id)},
                )
                self._persist(
                    stored, replace(stored, discounts=booking.discounts, status=booking.status), actor
                )
                raise

        logger.info(
            "Discount added",
            extra={
                "booking_id": str(booking_id),
                "discount_id": str(discount.discount_id),
                "amount": str(amount),
                "percentage_of_total": str(share),
                "needs_approval": needs_approval,
            },
        )
        return DiscountOutcome(booking=stored, discount=discount, approval=approval)

    def update_booking_status(
        self,
        booking_id: UUID,
        target: BookingStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> StatusChangeOutcome:
        """
        Move a booking along the status table.

        Cancellation needs a reason. Actors without cancellation override
        authority get a pending cancellation approval instead; the booking is
        cancelled once that approval resolves.

        Raises:
            ConflictError: transition not in the table
            ValidationError: cancellation without a reason
        """

        booking = self.get_booking(booking_id, actor)
        if not can_transition(booking.status, target):
            raise ConflictError(
                f"Cannot change status from {booking.status.value} to {target.value}",
                booking_id=str(booking_id),
                status=booking.status.value,
                target=target.value,
            )

        if target is BookingStatus.CANCELLED:
            if not reason or not reason.strip():
                raise ValidationError("Cancellation reason is required", booking_id=str(booking_id))
            rules = self._rules.rules_for(booking.tenant_id)
            if not actor.has_role(*rules.cancellation_override_roles):
                approval = self._approvals.create_approval(
                    ApprovalType.CANCELLATION,
                    EntityType.BOOKING,
                    booking_id,
                    actor,
                    amount=booking.total_booking_amount,
                    justification=reason,
                )
                return StatusChangeOutcome(booking=booking, approval=approval)
            return StatusChangeOutcome(
                booking=self._cancel(booking, actor, reason, requested_by=actor.actor_id)
            )

        stored = self._persist(booking, booking.with_status(target), actor)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking_id),
                "from_status": booking.status.value,
                "to_status": target.value,
            },
        )
        return StatusChangeOutcome(booking=stored)

    def _cancel(self, booking: Booking, actor: Actor, reason: str, *, requested_by: UUID) -> Booking:
        cancelled = replace(
            booking.with_status(BookingStatus.CANCELLED),
            cancellation=CancellationRecord(
                date=self._clock.now(),
                reason=reason,
                requested_by=requested_by,
                approved_by=actor.actor_id,
            ),
        )
        stored = self._persist(booking, cancelled, actor)
        self._return_unit(stored, actor)
        logger.info(
            "Booking cancelled",
            extra={"booking_id": str(booking.booking_id), "approved_by": str(actor.actor_id)},
        )
        return stored

    def _return_unit(self, booking: Booking, actor: Actor) -> None:
        unit = self._units.get_unit(booking.unit_id, actor)
        if unit.status is UnitStatus.BOOKED and unit.booking_id == booking.booking_id:
            self._units.release_booking(unit.unit_id, booking.booking_id, actor)
        else:
            logger.warning(
                "Cancelled booking did not own its unit",
                extra={"booking_id": str(booking.booking_id), "unit_id": str(unit.unit_id)},
            )

    def attach_payment_schedule(self, booking_id: UUID, schedule_id: UUID, actor: Actor) -> Booking:
        booking = self.get_booking(booking_id, actor)
        return self._persist(booking, replace(booking, payment_schedule_id=schedule_id), actor)

    def resolve_approval(self, approval: Approval, actor: Actor) -> None:
        """Apply the outcome of a terminal approval on a booking."""

        booking = self._bookings.get(approval.entity_id)
        if booking is None:
            raise NotFoundError("Booking", approval.entity_id)
        approved = approval.status is ApprovalStatus.APPROVED

        if approval.approval_type is ApprovalType.DISCOUNT:
            updated = booking.with_discount_status(
                approval.approval_id,
                DiscountStatus.APPROVED if approved else DiscountStatus.REJECTED,
            )
            if (
                updated.status is BookingStatus.PENDING_APPROVAL
                and not updated.has_pending_discounts()
            ):
                updated = updated.with_status(BookingStatus.APPROVED)
            self._persist(booking, updated, actor)
            logger.info(
                "Discount approval resolved",
                extra={
                    "booking_id": str(booking.booking_id),
                    "approval_id": str(approval.approval_id),
                    "approved": approved,
                },
            )
        elif approval.approval_type is ApprovalType.CANCELLATION:
            if approved and not booking.is_terminal:
                self._cancel(
                    booking, actor, approval.justification, requested_by=approval.requested_by
                )
            elif approved:
                # Booking already cancelled by an earlier attempt; finish returning the unit.
                self._return_unit(booking, actor)
            else:
                logger.info(
                    "Cancellation request rejected",
                    extra={"booking_id": str(booking.booking_id), "approval_id": str(approval.approval_id)},
                )


__all__ = [
    "DiscountRequest",
    "BookingOverrides",
    "BookingChanges",
    "DiscountOutcome",
    "StatusChangeOutcome",
    "recompute_total",
    "verify_total",
    "discount_needs_approval",
    "BookingOrchestrator",
]
