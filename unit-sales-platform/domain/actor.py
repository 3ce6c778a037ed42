"""
Domain: the acting user as supplied by the caller.

Identity, role and discount permissions come from the authorization layer on
every call; this core never looks users up itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .errors import ForbiddenError


class Role(str, Enum):
    PRINCIPAL = "Principal"
    BUSINESS_HEAD = "BusinessHead"
    SALES_DIRECTOR = "SalesDirector"
    SENIOR_AGENT = "SeniorAgent"
    JUNIOR_AGENT = "JuniorAgent"
    COLLECTIONS_MANAGER = "CollectionsManager"
    FINANCE_MANAGER = "FinanceManager"
    DOCUMENT_CONTROLLER = "DocumentController"
    EXTERNAL_AUDITOR = "ExternalAuditor"


# Discount ceiling (percent of booking total) applied when the caller does
# not supply one for the actor.
ROLE_DEFAULT_MAX_DISCOUNT: dict[Role, Decimal] = {
    Role.PRINCIPAL: Decimal("15"),
    Role.BUSINESS_HEAD: Decimal("10"),
    Role.SALES_DIRECTOR: Decimal("7"),
    Role.SENIOR_AGENT: Decimal("5"),
    Role.JUNIOR_AGENT: Decimal("2"),
}


@dataclass(frozen=True, slots=True)
class Actor:
    """
    Caller identity for a single operation.

    max_discount_percentage: explicit per-actor ceiling; None means "use the
        role default", see effective_max_discount().
    approval_threshold: optional monetary ceiling; discounts above it need
        approval even when their percentage is within the ceiling.
    """

    actor_id: UUID
    tenant_id: UUID
    role: Role
    max_discount_percentage: Optional[Decimal] = None
    approval_threshold: Optional[Decimal] = None

    def effective_max_discount(self, tenant_default: Decimal) -> Decimal:
        if self.max_discount_percentage is not None:
            return self.max_discount_percentage
        return ROLE_DEFAULT_MAX_DISCOUNT.get(self.role, tenant_default)

    def has_role(self, *roles: str) -> bool:
        return self.role.value in roles

    def ensure_tenant(self, tenant_id: UUID, entity: str) -> None:
        """Reject any reference to another tenant's data."""

        if tenant_id != self.tenant_id:
            raise ForbiddenError(
                f"{entity} belongs to another tenant",
                entity=entity,
                actor_id=str(self.actor_id),
            )
