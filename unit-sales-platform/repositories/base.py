"""
Storage interfaces consumed by the services.

Every mutable entity carries a ``version``. ``update(entity, expected_version)``
is a compare-and-swap: it stores the entity with ``version + 1`` only when the
stored version still equals ``expected_version`` and raises
StaleVersionError otherwise. Services never retry; the losing caller sees the
conflict.

Two implementations exist: ``repositories.memory`` (thread-safe, used by
tests and single-process deployments) and the Supabase-backed
``*_repository`` modules.
"""

from __future__ import annotations

from typing import List, Optional, Protocol
from uuid import UUID

from domain.approval import Approval, ApprovalStatus
from domain.booking import Booking
from domain.lead import Lead
from domain.payment_schedule import PaymentSchedule
from domain.payment_schedule_template import PaymentScheduleTemplate
from domain.project import Project, Tower
from domain.unit import Unit


class UnitRepository(Protocol):
    def get(self, unit_id: UUID) -> Optional[Unit]:
        ...

    def add(self, unit: Unit) -> Unit:
        ...

    def update(self, unit: Unit, expected_version: int) -> Unit:
        ...


class BookingRepository(Protocol):
    def get(self, booking_id: UUID) -> Optional[Booking]:
        ...

    def add(self, booking: Booking) -> Booking:
        """Insert a booking; a booking number already used by the tenant raises ConflictError."""
        ...

    def update(self, booking: Booking, expected_version: int) -> Booking:
        ...

    def remove(self, booking_id: UUID) -> None:
        """Delete a booking; only used to compensate a failed creation."""
        ...

    def count_for_month(self, tenant_id: UUID, year: int, month: int) -> int:
        ...


class ApprovalRepository(Protocol):
    def get(self, approval_id: UUID) -> Optional[Approval]:
        ...

    def add(self, approval: Approval) -> Approval:
        ...

    def update(self, approval: Approval, expected_version: int) -> Approval:
        ...

    def list(
        self,
        tenant_id: UUID,
        *,
        status: Optional[ApprovalStatus] = None,
        entity_id: Optional[UUID] = None,
        role: Optional[str] = None,
        assigned_to: Optional[UUID] = None,
    ) -> List[Approval]:
        """
        List a tenant's approvals, newest first.

        ``role`` and ``assigned_to`` match the level the approval is waiting on.
        """
        ...


class PaymentScheduleRepository(Protocol):
    def get(self, schedule_id: UUID) -> Optional[PaymentSchedule]:
        ...

    def get_by_booking(self, booking_id: UUID) -> Optional[PaymentSchedule]:
        ...

    def add(self, schedule: PaymentSchedule) -> PaymentSchedule:
        """Insert a schedule; ConflictError if the booking already has one."""
        ...

    def update(self, schedule: PaymentSchedule, expected_version: int) -> PaymentSchedule:
        ...


class PaymentScheduleTemplateRepository(Protocol):
    def get(self, template_id: UUID) -> Optional[PaymentScheduleTemplate]:
        ...

    def add(self, template: PaymentScheduleTemplate) -> PaymentScheduleTemplate:
        ...

    def update(
        self, template: PaymentScheduleTemplate, expected_version: int
    ) -> PaymentScheduleTemplate:
        ...

    def delete(self, template_id: UUID) -> None:
        ...

    def list(
        self,
        tenant_id: UUID,
        *,
        project_id: Optional[UUID] = None,
        is_default: Optional[bool] = None,
    ) -> List[PaymentScheduleTemplate]:
        """A project filter also returns the tenant-wide templates (no project)."""
        ...

    def clear_default(
        self, tenant_id: UUID, project_id: Optional[UUID], except_id: Optional[UUID] = None
    ) -> None:
        ...


class LeadRepository(Protocol):
    def get(self, lead_id: UUID) -> Optional[Lead]:
        ...

    def mark_converted(self, lead_id: UUID) -> Lead:
        ...


class ProjectRepository(Protocol):
    def get_project(self, project_id: UUID) -> Optional[Project]:
        ...

    def get_tower(self, tower_id: UUID) -> Optional[Tower]:
        ...


__all__ = [
    "UnitRepository",
    "BookingRepository",
    "ApprovalRepository",
    "PaymentScheduleRepository",
    "PaymentScheduleTemplateRepository",
    "LeadRepository",
    "ProjectRepository",
]
