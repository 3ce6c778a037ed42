"""
Lead repository (persistence).

This module provides *only* the lead operations the booking flow needs:
reading a lead and flipping it to ``converted``. Lead records themselves are
owned by the CRM layer.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.errors import NotFoundError
from domain.lead import Lead, LeadStatus
from repositories.client import check_response, get_supabase
from repositories.rows import row_to_lead

# Supabase table name for Lead records.
_LEADS_TABLE: str = "leads"


class SupabaseLeadRepository:
    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def get(self, lead_id: UUID) -> Optional[Lead]:
        response = (
            self.client.table(_LEADS_TABLE)
            .select("*")
            .eq("lead_id", str(lead_id))
            .limit(1)
            .execute()
        )
        rows = check_response(response, "get lead")
        return row_to_lead(rows[0]) if rows else None

    def mark_converted(self, lead_id: UUID) -> Lead:
        response = (
            self.client.table(_LEADS_TABLE)
            .update({"status": LeadStatus.CONVERTED.value})
            .eq("lead_id", str(lead_id))
            .execute()
        )
        rows = check_response(response, "mark lead converted")
        if not rows:
            raise NotFoundError("Lead", lead_id)
        return row_to_lead(rows[0])


__all__ = ["SupabaseLeadRepository"]
