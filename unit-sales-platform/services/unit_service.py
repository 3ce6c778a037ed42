"""
Unit lifecycle service.

Applies the availability state machine in ``domain.unit`` to stored units
with compare-and-swap writes: each transition reads the unit, computes the
next state, and stores it only if nobody changed the unit in between. Two
actors racing for the same unit therefore get exactly one success and one
ConflictError.

Lock expiry is evaluated lazily against the injected clock; there is no
background sweeper.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional
from uuid import UUID

from domain.actor import Actor
from domain.clock import Clock
from domain.errors import ForbiddenError, NotFoundError, StaleVersionError, ValidationError
from domain.unit import Unit, UnitStatus
from repositories.base import UnitRepository
from services.business_rules import BusinessRulesProvider

logger = logging.getLogger(__name__)


class UnitLifecycle:
    def __init__(self, units: UnitRepository, rules: BusinessRulesProvider, clock: Clock) -> None:
        self._units = units
        self._rules = rules
        self._clock = clock

    def _load(self, unit_id: UUID, actor: Actor) -> Unit:
        unit = self._units.get(unit_id)
        if unit is None:
            raise NotFoundError("Unit", unit_id)
        actor.ensure_tenant(unit.tenant_id, "Unit")
        return unit

    def _apply(self, unit: Unit, transition: Callable[[Unit], Unit], action: str, actor: Actor) -> Unit:
        updated = transition(unit)
        if updated is unit:
            return unit
        try:
            stored = self._units.update(updated, expected_version=unit.version)
        except StaleVersionError:
            logger.warning(
                f"Unit {action} lost a concurrent update",
                extra={"unit_id": str(unit.unit_id), "action": action, "actor_id": str(actor.actor_id)},
            )
            raise
        logger.info(
            f"Unit {action}",
            extra={
                "unit_id": str(unit.unit_id),
                "from_status": unit.status.value,
                "to_status": stored.status.value,
                "actor_id": str(actor.actor_id),
            },
        )
        return stored

    def get_unit(self, unit_id: UUID, actor: Actor) -> Unit:
        """Return the unit as of now; an expired lock reads as available."""

        unit = self._load(unit_id, actor)
        if unit.effective_status(self._clock.now()) is not unit.status:
            return replace(unit, status=UnitStatus.AVAILABLE, locked_by=None, locked_until=None)
        return unit

    def lock(self, unit_id: UUID, actor: Actor, minutes: Optional[int] = None) -> Unit:
        unit = self._load(unit_id, actor)
        if minutes is None:
            minutes = self._rules.rules_for(unit.tenant_id).lock_period_minutes
        now = self._clock.now()
        return self._apply(unit, lambda u: u.lock(actor.actor_id, minutes, now), "locked", actor)

    def release(self, unit_id: UUID, actor: Actor) -> Unit:
        """
        Release a lock. Only the lock holder, or a role with lock override
        authority, may release a live lock.

        Raises:
            ForbiddenError: the lock is held by another actor
            ConflictError: the unit is not locked
        """

        unit = self._load(unit_id, actor)
        now = self._clock.now()
        if unit.is_validly_locked(now) and unit.locked_by != actor.actor_id:
            rules = self._rules.rules_for(unit.tenant_id)
            if not actor.has_role(*rules.lock_override_roles):
                logger.warning(
                    "Unit release refused; lock held by another actor",
                    extra={
                        "unit_id": str(unit_id),
                        "locked_by": str(unit.locked_by),
                        "actor_id": str(actor.actor_id),
                    },
                )
                raise ForbiddenError(
                    "Unit is locked by another actor",
                    unit_id=str(unit_id),
                    actor_id=str(actor.actor_id),
                )
        return self._apply(unit, lambda u: u.release(now), "released", actor)

    def book(self, unit_id: UUID, booking_id: UUID, actor: Actor) -> Unit:
        unit = self._load(unit_id, actor)
        now = self._clock.now()
        return self._apply(unit, lambda u: u.book(booking_id, now), "booked", actor)

    def sell(self, unit_id: UUID, actor: Actor) -> Unit:
        unit = self._load(unit_id, actor)
        return self._apply(unit, lambda u: u.sell(), "sold", actor)

    def release_booking(self, unit_id: UUID, booking_id: UUID, actor: Actor) -> Unit:
        unit = self._load(unit_id, actor)
        return self._apply(
            unit, lambda u: u.release_booking(booking_id), "returned to inventory", actor
        )

    def change_status(
        self,
        unit_id: UUID,
        target: UnitStatus,
        actor: Actor,
        *,
        booking_id: Optional[UUID] = None,
        minutes: Optional[int] = None,
    ) -> Unit:
        """
        Move a unit to ``target`` through the matching transition.

        Args:
            target: Desired status
            booking_id: Required when booking the unit
            minutes: Optional lock duration when locking

        Raises:
            ValidationError: booking without a booking_id
            ConflictError: transition not allowed from the current status
        """

        if target is UnitStatus.LOCKED:
            return self.lock(unit_id, actor, minutes)
        if target is UnitStatus.BOOKED:
            if booking_id is None:
                raise ValidationError("booking_id is required to book a unit", unit_id=str(unit_id))
            return self.book(unit_id, booking_id, actor)
        if target is UnitStatus.SOLD:
            return self.sell(unit_id, actor)

        # Booked units only return to inventory through booking cancellation.
        return self.release(unit_id, actor)


__all__ = ["UnitLifecycle"]
