"""
Booking repository (persistence).

Bookings are written whole; nested premiums, discounts, notes and the price
breakdown live in JSON columns. The table carries a unique index on
(tenant_id, booking_number), so a duplicate number surfaces as ConflictError
from add().
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.booking import Booking
from domain.time import month_bounds
from repositories.client import check_response
from repositories.rows import booking_to_row, row_to_booking
from repositories.supabase_base import SupabaseRepository


class SupabaseBookingRepository(SupabaseRepository[Booking]):
    table = "bookings"
    key_column = "booking_id"
    entity = "Booking"

    def __init__(self, client: Optional[Client] = None) -> None:
        super().__init__(booking_to_row, row_to_booking, lambda b: b.booking_id, client)

    def count_for_month(self, tenant_id: UUID, year: int, month: int) -> int:
        start, end = month_bounds(year, month)
        response = (
            self._query()
            .select("booking_id", count="exact")
            .eq("tenant_id", str(tenant_id))
            .gte("created_at_utc", start.isoformat())
            .lt("created_at_utc", end.isoformat())
            .execute()
        )
        rows = check_response(response, "count bookings")
        count = getattr(response, "count", None)
        return int(count) if count is not None else len(rows)


__all__ = ["SupabaseBookingRepository"]
