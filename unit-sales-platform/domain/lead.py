"""
Domain: prospective buyer (lead) as seen by the booking flow.

Lead records are owned by the CRM layer; the booking flow only reads the
customer identity and flips the status to ``converted``. Identity fields are
snapshotted onto the booking so later CRM edits do not rewrite history.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    NEGOTIATION = "negotiation"
    CONVERTED = "converted"
    LOST = "lost"


@dataclass(frozen=True, slots=True)
class Lead:
    lead_id: UUID
    tenant_id: UUID
    full_name: str
    status: LeadStatus = LeadStatus.NEW
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CustomerSnapshot:
    """Customer identity copied from the lead when the booking is created."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @staticmethod
    def from_lead(lead: Lead) -> "CustomerSnapshot":
        return CustomerSnapshot(name=lead.full_name, email=lead.email, phone=lead.phone)
