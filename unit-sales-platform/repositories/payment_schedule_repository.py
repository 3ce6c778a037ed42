"""
Payment schedule and schedule template repositories (persistence).

One schedule per booking is enforced here (and by a unique index on
``payment_schedules.booking_id``); all other schedule rules live in the
domain and the schedule service.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.errors import ConflictError
from domain.payment_schedule import PaymentSchedule
from domain.payment_schedule_template import PaymentScheduleTemplate
from repositories.client import check_response
from repositories.rows import row_to_schedule, row_to_template, schedule_to_row, template_to_row
from repositories.supabase_base import SupabaseRepository


class SupabasePaymentScheduleRepository(SupabaseRepository[PaymentSchedule]):
    table = "payment_schedules"
    key_column = "schedule_id"
    entity = "PaymentSchedule"

    def __init__(self, client: Optional[Client] = None) -> None:
        super().__init__(schedule_to_row, row_to_schedule, lambda s: s.schedule_id, client)

    def get_by_booking(self, booking_id: UUID) -> Optional[PaymentSchedule]:
        found = self._select({"booking_id": str(booking_id)})
        return found[0] if found else None

    def add(self, schedule: PaymentSchedule) -> PaymentSchedule:
        # Enforce uniqueness proactively to provide a clean, domain-friendly error.
        if self.get_by_booking(schedule.booking_id) is not None:
            raise ConflictError(
                "Payment schedule already exists for this booking",
                booking_id=str(schedule.booking_id),
            )
        return super().add(schedule)


class SupabasePaymentScheduleTemplateRepository(SupabaseRepository[PaymentScheduleTemplate]):
    table = "payment_schedule_templates"
    key_column = "template_id"
    entity = "PaymentScheduleTemplate"

    def __init__(self, client: Optional[Client] = None) -> None:
        super().__init__(template_to_row, row_to_template, lambda t: t.template_id, client)

    def delete(self, template_id: UUID) -> None:
        self.remove(template_id)

    def list(
        self,
        tenant_id: UUID,
        *,
        project_id: Optional[UUID] = None,
        is_default: Optional[bool] = None,
    ) -> List[PaymentScheduleTemplate]:
        query = self._query().select("*").eq("tenant_id", str(tenant_id))
        if project_id is not None:
            query = query.or_(f"project_id.eq.{project_id},project_id.is.null")
        if is_default is not None:
            query = query.eq("is_default", is_default)
        rows = check_response(query.order("name").execute(), "list schedule templates")
        return [row_to_template(row) for row in rows]

    def clear_default(
        self, tenant_id: UUID, project_id: Optional[UUID], except_id: Optional[UUID] = None
    ) -> None:
        query = (
            self._query()
            .update({"is_default": False})
            .eq("tenant_id", str(tenant_id))
            .eq("is_default", True)
        )
        if project_id is None:
            query = query.is_("project_id", "null")
        else:
            query = query.eq("project_id", str(project_id))
        if except_id is not None:
            query = query.neq("template_id", str(except_id))
        check_response(query.execute(), "clear default schedule template")


__all__ = ["SupabasePaymentScheduleRepository", "SupabasePaymentScheduleTemplateRepository"]
