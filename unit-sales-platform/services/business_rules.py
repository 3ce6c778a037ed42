"""
Tenant business-rule configuration.

Rules are pydantic models so values coming from a tenant settings store or
the environment are validated once, at the edge, and the services only ever
see well-formed Decimals and sets.

Environment overrides (loaded from the project's .env file):
- UNIT_LOCK_PERIOD_MINUTES
- DEFAULT_MAX_DISCOUNT_PERCENTAGE
- SCHEDULE_MATERIALITY_AMOUNT
- SCHEDULE_MATERIALITY_PERCENTAGE
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Protocol, Tuple
from uuid import UUID

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from domain.actor import Role

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_ENV_OVERRIDES: Dict[str, str] = {
    "lock_period_minutes": "UNIT_LOCK_PERIOD_MINUTES",
    "max_discount_percentage": "DEFAULT_MAX_DISCOUNT_PERCENTAGE",
    "materiality_amount": "SCHEDULE_MATERIALITY_AMOUNT",
    "materiality_percentage": "SCHEDULE_MATERIALITY_PERCENTAGE",
}


class DiscountApprovalBand(BaseModel):
    """A discount strictly above either bound is routed to ``role``."""

    model_config = ConfigDict(frozen=True)

    role: str
    above_amount: Decimal = Field(ge=0)
    above_percentage: Decimal = Field(ge=0, le=100)


DEFAULT_DISCOUNT_BANDS: Tuple[DiscountApprovalBand, ...] = (
    DiscountApprovalBand(
        role=Role.PRINCIPAL.value,
        above_amount=Decimal("1000000"),
        above_percentage=Decimal("10"),
    ),
    DiscountApprovalBand(
        role=Role.BUSINESS_HEAD.value,
        above_amount=Decimal("500000"),
        above_percentage=Decimal("5"),
    ),
)


class TenantBusinessRules(BaseModel):
    """
    Per-tenant knobs consumed by the services.

    discount_approval_bands are checked in order; the first band whose
    amount or percentage bound is exceeded picks the approver role, and
    ``default_discount_approver`` handles everything below the last band.
    """

    model_config = ConfigDict(frozen=True)

    lock_period_minutes: int = Field(default=60, gt=0)
    max_discount_percentage: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    materiality_amount: Decimal = Field(default=Decimal("10000"), ge=0)
    materiality_percentage: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    discount_override_roles: FrozenSet[str] = frozenset({Role.PRINCIPAL.value})
    cancellation_override_roles: FrozenSet[str] = frozenset({Role.PRINCIPAL.value})
    lock_override_roles: FrozenSet[str] = frozenset(
        {Role.PRINCIPAL.value, Role.BUSINESS_HEAD.value, Role.SALES_DIRECTOR.value}
    )
    discount_approval_bands: Tuple[DiscountApprovalBand, ...] = DEFAULT_DISCOUNT_BANDS
    default_discount_approver: str = Role.SALES_DIRECTOR.value
    cancellation_approver: str = Role.BUSINESS_HEAD.value
    default_approver: str = Role.SALES_DIRECTOR.value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TenantBusinessRules":
        """Defaults with any environment overrides applied."""

        environ = os.environ if environ is None else environ
        values = {
            field: environ[name]
            for field, name in _ENV_OVERRIDES.items()
            if environ.get(name)
        }
        return cls(**values)


class BusinessRulesProvider(Protocol):
    def rules_for(self, tenant_id: UUID) -> TenantBusinessRules:
        ...


class StaticBusinessRules:
    """
    Provider backed by a fixed mapping; tenants without an entry get the
    default rules.
    """

    def __init__(
        self,
        default: Optional[TenantBusinessRules] = None,
        per_tenant: Optional[Mapping[UUID, TenantBusinessRules]] = None,
    ) -> None:
        self._default = default or TenantBusinessRules.from_env()
        self._per_tenant = dict(per_tenant or {})

    def rules_for(self, tenant_id: UUID) -> TenantBusinessRules:
        return self._per_tenant.get(tenant_id, self._default)


__all__ = [
    "DiscountApprovalBand",
    "DEFAULT_DISCOUNT_BANDS",
    "TenantBusinessRules",
    "BusinessRulesProvider",
    "StaticBusinessRules",
]
