"""
Approval workflow service.

Owns sequential approval chains attached to bookings and payment schedules.
The service enforces chain ordering and terminal-state integrity; whether an
unassigned level may be acted on by a given role is left to the caller.

Effects of a resolved approval (flip a discount, cancel a booking, ratify a
schedule edit) belong to the owning service, which registers a resolution
handler per entity type when the services are wired together.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple
from uuid import UUID, uuid4

from domain.actor import Actor
from domain.approval import (
    Approval,
    ApprovalAction,
    ApprovalLevel,
    ApprovalStatus,
    ApprovalType,
    EntityType,
)
from domain.clock import Clock
from domain.errors import NotFoundError, StaleVersionError, ValidationError
from domain.money import ZERO
from repositories.base import ApprovalRepository
from services.business_rules import BusinessRulesProvider

logger = logging.getLogger(__name__)

ResolutionHandler = Callable[[Approval, Actor], None]


class ApproverDirectory(Protocol):
    def find_approver(self, tenant_id: UUID, role: str) -> Optional[UUID]:
        """Return an active actor holding ``role`` in the tenant, if any."""
        ...


class StaticApproverDirectory:
    """Directory backed by a fixed ``(tenant_id, role) -> [actor_id, ...]`` mapping."""

    def __init__(self, approvers: Mapping[Tuple[UUID, str], Sequence[UUID]]) -> None:
        self._approvers = {key: list(value) for key, value in approvers.items()}

    def find_approver(self, tenant_id: UUID, role: str) -> Optional[UUID]:
        candidates = self._approvers.get((tenant_id, role)) or []
        return candidates[0] if candidates else None


class ApprovalWorkflow:
    def __init__(
        self,
        approvals: ApprovalRepository,
        rules: BusinessRulesProvider,
        clock: Clock,
        directory: Optional[ApproverDirectory] = None,
    ) -> None:
        self._approvals = approvals
        self._rules = rules
        self._clock = clock
        self._directory = directory
        self._handlers: Dict[EntityType, ResolutionHandler] = {}

    def register_resolution_handler(self, entity_type: EntityType, handler: ResolutionHandler) -> None:
        self._handlers[entity_type] = handler

    def build_chain(
        self,
        tenant_id: UUID,
        approval_type: ApprovalType,
        amount: Optional[Decimal] = None,
        percentage: Optional[Decimal] = None,
    ) -> Tuple[ApprovalLevel, ...]:
        """
        Default single-level chain for a request.

        Discounts are routed by the tenant's bands (first band whose amount or
        percentage bound is exceeded); cancellations go to the cancellation
        approver; everything else to the default approver.
        """

        rules = self._rules.rules_for(tenant_id)
        role = rules.default_approver
        min_amount = ZERO

        if approval_type is ApprovalType.DISCOUNT:
            role = rules.default_discount_approver
            amount_value = amount or ZERO
            percentage_value = percentage or ZERO
            for band in rules.discount_approval_bands:
                if amount_value > band.above_amount or percentage_value > band.above_percentage:
                    role = band.role
                    min_amount = band.above_amount
                    break
        elif approval_type is ApprovalType.CANCELLATION:
            role = rules.cancellation_approver

        assigned_to = None
        if self._directory is not None:
            assigned_to = self._directory.find_approver(tenant_id, role)
        return (ApprovalLevel(role=role, min_amount=min_amount, assigned_to=assigned_to),)

    def create_approval(
        self,
        approval_type: ApprovalType,
        entity_type: EntityType,
        entity_id: UUID,
        requested_by: Actor,
        *,
        amount: Optional[Decimal] = None,
        percentage: Optional[Decimal] = None,
        justification: str = "",
        chain: Optional[Sequence[ApprovalLevel]] = None,
        approval_id: Optional[UUID] = None,
    ) -> Approval:
        """
        Open a pending approval at level 0.

        Args:
            chain: Explicit chain; when omitted build_chain() picks one.
            approval_id: Pre-allocated id, for callers that reference the
                approval before it is stored.

        Raises:
            ValidationError: empty chain
        """

        tenant_id = requested_by.tenant_id
        levels = tuple(chain) if chain is not None else self.build_chain(
            tenant_id, approval_type, amount, percentage
        )
        if not levels:
            raise ValidationError("Approval chain must have at least one level")

        approval = Approval(
            approval_id=approval_id or uuid4(),
            tenant_id=tenant_id,
            approval_type=approval_type,
            entity_type=entity_type,
            entity_id=entity_id,
            requested_by=requested_by.actor_id,
            chain=levels,
            created_at=self._clock.now(),
            amount=amount,
            percentage=percentage,
            justification=justification,
        )
        self._approvals.add(approval)
        logger.info(
            "Approval requested",
            extra={
                "approval_id": str(approval.approval_id),
                "approval_type": approval_type.value,
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "levels": [level.role for level in levels],
            },
        )
        return approval

    def get_approval(self, approval_id: UUID, actor: Actor) -> Approval:
        approval = self._approvals.get(approval_id)
        if approval is None:
            raise NotFoundError("Approval", approval_id)
        actor.ensure_tenant(approval.tenant_id, "Approval")
        return approval

    def list_approvals(
        self,
        actor: Actor,
        *,
        status: Optional[ApprovalStatus] = None,
        entity_id: Optional[UUID] = None,
    ) -> List[Approval]:
        return self._approvals.list(actor.tenant_id, status=status, entity_id=entity_id)

    def pending_for_actor(self, actor: Actor) -> List[Approval]:
        """Pending approvals whose current level is assigned to, or open to the role of, the actor."""

        pending = self._approvals.list(
            actor.tenant_id, status=ApprovalStatus.PENDING, role=actor.role.value
        )
        return [a for a in pending if a.can_be_decided_by(actor.actor_id)]

    def process_approval(
        self,
        approval_id: UUID,
        action: ApprovalAction,
        actor: Actor,
        comment: Optional[str] = None,
    ) -> Approval:
        """
        Record one decision at the current level.

        Raises:
            NotFoundError: unknown approval
            ForbiddenError: other tenant, or level assigned to someone else
            ConflictError: approval not pending, malformed chain, or a
                concurrent decision won the race

        A resolution handler failure propagates after the decision is rolled
        back.
        """

        approval = self.get_approval(approval_id, actor)
        decided = approval.decide(action, actor.actor_id, self._clock.now(), comment)
        try:
            stored = self._approvals.update(decided, expected_version=approval.version)
        except StaleVersionError:
            logger.warning(
                "Concurrent decision on approval",
                extra={"approval_id": str(approval_id), "actor_id": str(actor.actor_id)},
            )
            raise

        log = logger.warning if stored.status is ApprovalStatus.REJECTED else logger.info
        log(
            f"Approval {action.value} at level {approval.current_level}",
            extra={
                "approval_id": str(approval_id),
                "actor_id": str(actor.actor_id),
                "status": stored.status.value,
                "current_level": stored.current_level,
            },
        )

        if stored.is_terminal:
            return self._resolve(approval, stored, actor)
        return stored

    def _resolve(self, previous: Approval, stored: Approval, actor: Actor) -> Approval:
        """
        Run the owning service's handler for a terminal approval.

        When the handler fails the decision is rolled back, leaving the
        approval pending at its previous level so it can be decided again.
        """

        handler = self._handlers.get(stored.entity_type)
        if handler is None:
            return stored
        try:
            handler(stored, actor)
        except Exception:
            logger.warning(
                "Approval resolution failed; decision rolled back",
                extra={
                    "approval_id": str(stored.approval_id),
                    "entity_type": stored.entity_type.value,
                    "entity_id": str(stored.entity_id),
                },
            )
            self._approvals.update(previous, expected_version=stored.version)
            raise
        return stored

    def skip_level(self, approval_id: UUID, actor: Actor, comment: Optional[str] = None) -> Approval:
        return self.process_approval(approval_id, ApprovalAction.SKIP, actor, comment)


__all__ = [
    "ResolutionHandler",
    "ApproverDirectory",
    "StaticApproverDirectory",
    "ApprovalWorkflow",
]
