"""
Tests for `domain/approval.py` and `services/approval_service.py`.

Covers chain processing:
- Levels are decided strictly in order; reject halts the chain.
- The approval is approved only after the last level clears (approve or skip).
- Assigned levels accept only their assignee; terminal approvals accept nothing.
- Default chains follow the tenant's discount bands.
- A resolution handler failure rolls the final decision back.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

import pytest

from domain.approval import ApprovalAction, ApprovalLevel, ApprovalStatus, ApprovalType, EntityType, LevelStatus
from domain.errors import ConflictError, ForbiddenError, ValidationError
from services.approval_service import ApprovalWorkflow, StaticApproverDirectory
from services.business_rules import StaticBusinessRules

from conftest import TENANT_ID

ENTITY_ID = UUID("00000000-0000-0000-0000-000000000777")


@pytest.fixture
def workflow(services, rules, clock) -> ApprovalWorkflow:
    """A workflow over the shared approval store with no resolution handlers registered."""

    return ApprovalWorkflow(services.repositories.approvals, StaticBusinessRules(rules), clock)


def _three_level_chain():
    return (
        ApprovalLevel(role="SalesDirector"),
        ApprovalLevel(role="BusinessHead"),
        ApprovalLevel(role="Principal"),
    )


def _open(workflow, actors, chain=None, approval_type=ApprovalType.AMENDMENT):
    return workflow.create_approval(
        approval_type,
        EntityType.PAYMENT_SCHEDULE,
        ENTITY_ID,
        actors.agent,
        amount=Decimal("25000"),
        justification="customer request",
        chain=chain if chain is not None else _three_level_chain(),
    )


def test_new_approval_starts_pending_at_level_zero(workflow, actors) -> None:
    approval = _open(workflow, actors)

    assert approval.status is ApprovalStatus.PENDING
    assert approval.current_level == 0
    assert approval.requested_by == actors.agent.actor_id
    assert workflow.get_approval(approval.approval_id, actors.principal) == approval


def test_reject_at_second_level_halts_the_chain(workflow, actors) -> None:
    """Rejecting at level 2 rejects the approval and leaves level 3 untouched."""

    approval = _open(workflow, actors)
    workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.sales_director)

    rejected = workflow.process_approval(
        approval.approval_id, ApprovalAction.REJECT, actors.business_head, comment="too generous"
    )

    assert rejected.status is ApprovalStatus.REJECTED
    assert [level.status for level in rejected.chain] == [
        LevelStatus.APPROVED,
        LevelStatus.REJECTED,
        LevelStatus.PENDING,
    ]
    assert rejected.chain[1].comment == "too generous"
    assert rejected.chain[2].decided_by is None
    with pytest.raises(ConflictError):
        workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)


def test_approval_completes_only_after_last_level(workflow, actors, clock) -> None:
    approval = _open(workflow, actors)

    after_first = workflow.process_approval(
        approval.approval_id, ApprovalAction.APPROVE, actors.sales_director
    )
    clock.advance(minutes=5)
    after_second = workflow.process_approval(
        approval.approval_id, ApprovalAction.APPROVE, actors.business_head
    )
    assert (after_first.status, after_first.current_level) == (ApprovalStatus.PENDING, 1)
    assert (after_second.status, after_second.current_level) == (ApprovalStatus.PENDING, 2)

    final = workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)

    assert final.status is ApprovalStatus.APPROVED
    assert all(level.status is LevelStatus.APPROVED for level in final.chain)
    assert final.chain[1].decided_at == clock.now()
    assert final.chain[2].decided_by == actors.principal.actor_id


def test_skipped_level_counts_as_cleared(workflow, actors) -> None:
    approval = _open(workflow, actors)
    workflow.skip_level(approval.approval_id, actors.principal, comment="not needed")
    workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.business_head)

    final = workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)

    assert final.status is ApprovalStatus.APPROVED
    assert final.chain[0].status is LevelStatus.SKIPPED
    assert all(level.is_cleared for level in final.chain)


def test_assigned_level_only_accepts_its_assignee(workflow, actors) -> None:
    chain = (ApprovalLevel(role="BusinessHead", assigned_to=actors.business_head.actor_id),)
    approval = _open(workflow, actors, chain=chain)

    with pytest.raises(ForbiddenError):
        workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)

    final = workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.business_head)
    assert final.status is ApprovalStatus.APPROVED


def test_empty_chain_is_rejected(workflow, actors) -> None:
    with pytest.raises(ValidationError):
        _open(workflow, actors, chain=())


def test_other_tenant_cannot_see_or_decide(workflow, actors) -> None:
    approval = _open(workflow, actors)

    with pytest.raises(ForbiddenError):
        workflow.get_approval(approval.approval_id, actors.outsider)
    with pytest.raises(ForbiddenError):
        workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.outsider)


@pytest.mark.parametrize(
    ("amount", "percentage", "role"),
    [
        (Decimal("100000"), Decimal("12"), "Principal"),
        (Decimal("1500000"), Decimal("3"), "Principal"),
        (Decimal("100000"), Decimal("6"), "BusinessHead"),
        (Decimal("600000"), Decimal("1"), "BusinessHead"),
        (Decimal("100000"), Decimal("4"), "SalesDirector"),
    ],
)
def test_default_discount_chain_follows_bands(workflow, amount, percentage, role) -> None:
    chain = workflow.build_chain(TENANT_ID, ApprovalType.DISCOUNT, amount, percentage)

    assert [level.role for level in chain] == [role]


def test_default_chain_for_cancellation_and_other_types(workflow) -> None:
    cancellation = workflow.build_chain(TENANT_ID, ApprovalType.CANCELLATION)
    amendment = workflow.build_chain(TENANT_ID, ApprovalType.AMENDMENT)

    assert cancellation[0].role == "BusinessHead"
    assert amendment[0].role == "SalesDirector"


def test_directory_assigns_level_approver(services, actors, rules, clock) -> None:
    directory = StaticApproverDirectory({(TENANT_ID, "BusinessHead"): [actors.business_head.actor_id]})
    assigning = ApprovalWorkflow(
        services.repositories.approvals, StaticBusinessRules(rules), clock, directory
    )

    chain = assigning.build_chain(TENANT_ID, ApprovalType.CANCELLATION)

    assert chain[0].assigned_to == actors.business_head.actor_id


def test_pending_for_actor_and_listing(workflow, actors) -> None:
    first = _open(workflow, actors, chain=(ApprovalLevel(role="BusinessHead"),))
    second = _open(workflow, actors, chain=(ApprovalLevel(role="Principal"),))
    workflow.process_approval(second.approval_id, ApprovalAction.APPROVE, actors.principal)

    waiting = workflow.pending_for_actor(actors.business_head)
    approved = workflow.list_approvals(actors.principal, status=ApprovalStatus.APPROVED)

    assert [a.approval_id for a in waiting] == [first.approval_id]
    assert [a.approval_id for a in approved] == [second.approval_id]
    assert workflow.pending_for_actor(actors.principal) == []


def test_resolution_handler_runs_once_terminal(workflow, actors) -> None:
    seen = []
    workflow.register_resolution_handler(
        EntityType.PAYMENT_SCHEDULE, lambda approval, actor: seen.append(approval.status)
    )
    approval = _open(workflow, actors)

    workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.sales_director)
    assert seen == []

    workflow.process_approval(approval.approval_id, ApprovalAction.REJECT, actors.business_head)
    assert seen == [ApprovalStatus.REJECTED]


def test_failed_resolution_rolls_back_the_final_decision(workflow, actors) -> None:
    outcomes = []

    def handler(approval, actor):
        if not outcomes:
            outcomes.append("failed")
            raise RuntimeError("Failed to update PaymentSchedule: timeout")
        outcomes.append(approval.status)

    workflow.register_resolution_handler(EntityType.PAYMENT_SCHEDULE, handler)
    approval = _open(workflow, actors)
    workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.sales_director)
    workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.business_head)

    with pytest.raises(RuntimeError):
        workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)

    pending = workflow.get_approval(approval.approval_id, actors.agent)
    assert pending.status is ApprovalStatus.PENDING
    assert pending.current_level == 2
    assert pending.chain[2].status is LevelStatus.PENDING

    approved = workflow.process_approval(approval.approval_id, ApprovalAction.APPROVE, actors.principal)

    assert approved.status is ApprovalStatus.APPROVED
    assert outcomes == ["failed", ApprovalStatus.APPROVED]
