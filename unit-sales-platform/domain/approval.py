"""
Domain: sequential multi-level approval.

An approval gates one action (a discount, a cancellation, a schedule
amendment...) on a booking or payment schedule. Its chain is processed
strictly in order, one decision per level:

- approve: the level is cleared; the pointer moves to the next level, or the
  approval becomes APPROVED when the last level is cleared.
- skip: like approve, but the level is recorded as SKIPPED.
- reject: the approval becomes REJECTED and no later level is ever processed.

Only a PENDING approval accepts decisions. A level with an assigned actor
accepts decisions from that actor only; unassigned levels leave the role
check to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .errors import ConflictError, ForbiddenError
from .time import require_optional_utc_timestamp, require_utc_timestamp


class ApprovalType(str, Enum):
    DISCOUNT = "discount"
    SPECIAL_TERMS = "special_terms"
    CANCELLATION = "cancellation"
    AMENDMENT = "amendment"
    PAYMENT_SCHEDULE = "payment_schedule"


class EntityType(str, Enum):
    BOOKING = "booking"
    PAYMENT_SCHEDULE = "payment_schedule"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LevelStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    SKIP = "skip"


_ACTION_TO_LEVEL_STATUS = {
    ApprovalAction.APPROVE: LevelStatus.APPROVED,
    ApprovalAction.REJECT: LevelStatus.REJECTED,
    ApprovalAction.SKIP: LevelStatus.SKIPPED,
}


@dataclass(frozen=True, slots=True)
class ApprovalLevel:
    role: str
    min_amount: Decimal = Decimal("0")
    max_amount: Optional[Decimal] = None
    assigned_to: Optional[UUID] = None
    status: LevelStatus = LevelStatus.PENDING
    comment: Optional[str] = None
    decided_by: Optional[UUID] = None
    decided_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("decided_at", self.decided_at)

    @property
    def is_cleared(self) -> bool:
        return self.status in (LevelStatus.APPROVED, LevelStatus.SKIPPED)


@dataclass(frozen=True, slots=True)
class Approval:
    approval_id: UUID
    tenant_id: UUID
    approval_type: ApprovalType
    entity_type: EntityType
    entity_id: UUID
    requested_by: UUID
    chain: Tuple[ApprovalLevel, ...]
    created_at: datetime
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    justification: str = ""
    status: ApprovalStatus = ApprovalStatus.PENDING
    current_level: int = 0
    updated_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_terminal(self) -> bool:
        return self.status is not ApprovalStatus.PENDING

    def current(self) -> Optional[ApprovalLevel]:
        if 0 <= self.current_level < len(self.chain):
            return self.chain[self.current_level]
        return None

    def can_be_decided_by(self, actor_id: UUID) -> bool:
        level = self.current()
        if self.status is not ApprovalStatus.PENDING or level is None:
            return False
        return level.assigned_to is None or level.assigned_to == actor_id

    def decide(
        self,
        action: ApprovalAction,
        actor_id: UUID,
        now: datetime,
        comment: Optional[str] = None,
    ) -> "Approval":
        if self.status is not ApprovalStatus.PENDING:
            raise ConflictError(
                f"Cannot {action.value} an approval that is not pending",
                approval_id=str(self.approval_id),
                status=self.status.value,
            )
        level = self.current()
        if level is None:
            raise ConflictError(
                "Invalid approval level",
                approval_id=str(self.approval_id),
                current_level=self.current_level,
            )
        if level.assigned_to is not None and level.assigned_to != actor_id:
            raise ForbiddenError(
                "Approval level is assigned to another approver",
                approval_id=str(self.approval_id),
                current_level=self.current_level,
            )

        decided = replace(
            level,
            status=_ACTION_TO_LEVEL_STATUS[action],
            comment=comment,
            decided_by=actor_id,
            decided_at=now,
        )
        chain = self.chain[: self.current_level] + (decided,) + self.chain[self.current_level + 1 :]

        status = self.status
        current_level = self.current_level
        if action is ApprovalAction.REJECT:
            status = ApprovalStatus.REJECTED
        elif current_level + 1 < len(chain):
            current_level += 1
        else:
            status = ApprovalStatus.APPROVED

        return replace(
            self,
            chain=chain,
            status=status,
            current_level=current_level,
            updated_by=actor_id,
            updated_at=now,
        )
