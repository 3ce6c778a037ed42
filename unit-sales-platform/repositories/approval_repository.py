"""
Approval repository (persistence).

The chain is stored as a JSON column, so filters on the level an approval is
waiting on (role, assignee) are applied after decoding.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.approval import Approval, ApprovalStatus
from repositories.rows import approval_to_row, row_to_approval
from repositories.supabase_base import SupabaseRepository


class SupabaseApprovalRepository(SupabaseRepository[Approval]):
    table = "approvals"
    key_column = "approval_id"
    entity = "Approval"

    def __init__(self, client: Optional[Client] = None) -> None:
        super().__init__(approval_to_row, row_to_approval, lambda a: a.approval_id, client)

    def list(
        self,
        tenant_id: UUID,
        *,
        status: Optional[ApprovalStatus] = None,
        entity_id: Optional[UUID] = None,
        role: Optional[str] = None,
        assigned_to: Optional[UUID] = None,
    ) -> List[Approval]:
        filters: Dict[str, Any] = {"tenant_id": str(tenant_id)}
        if status is not None:
            filters["status"] = status.value
        if entity_id is not None:
            filters["entity_id"] = str(entity_id)

        approvals = []
        for approval in self._select(filters):
            level = approval.current()
            if role is not None and (level is None or level.role != role):
                continue
            if assigned_to is not None and (level is None or level.assigned_to != assigned_to):
                continue
            approvals.append(approval)
        return sorted(approvals, key=lambda a: a.created_at, reverse=True)


__all__ = ["SupabaseApprovalRepository"]
