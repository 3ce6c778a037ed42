"""
Unit repository (persistence).

Persistence only: the availability state machine lives in ``domain.unit``
and is applied by the unit service before calling ``update``.
"""

from __future__ import annotations

from typing import Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.unit import Unit
from repositories.rows import row_to_unit, unit_to_row
from repositories.supabase_base import SupabaseRepository


class SupabaseUnitRepository(SupabaseRepository[Unit]):
    table = "units"
    key_column = "unit_id"
    entity = "Unit"

    def __init__(self, client: Optional[Client] = None) -> None:
        super().__init__(unit_to_row, row_to_unit, lambda unit: unit.unit_id, client)


__all__ = ["SupabaseUnitRepository"]
