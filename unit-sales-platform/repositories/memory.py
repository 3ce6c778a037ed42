"""
In-memory repositories.

Each store keeps frozen entities in a dict guarded by its own lock, so a
compare-and-swap update is atomic with respect to every other call on the
same store. Entities are immutable, so handing them out without copying is
safe.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Dict, Generic, List, Optional, TypeVar
from uuid import UUID

from domain.approval import Approval, ApprovalStatus
from domain.booking import Booking
from domain.errors import ConflictError, NotFoundError, StaleVersionError
from domain.lead import Lead, LeadStatus
from domain.payment_schedule import PaymentSchedule
from domain.payment_schedule_template import PaymentScheduleTemplate
from domain.project import Project, Tower
from domain.time import month_bounds
from domain.unit import Unit

T = TypeVar("T")


class _VersionedStore(Generic[T]):
    def __init__(self, entity: str, key: Callable[[T], UUID]) -> None:
        self._entity = entity
        self._key = key
        self._items: Dict[UUID, T] = {}
        self._lock = threading.Lock()

    def get(self, entity_id: UUID) -> Optional[T]:
        with self._lock:
            return self._items.get(entity_id)

    def add(self, item: T) -> T:
        with self._lock:
            return self._insert(item)

    def _insert(self, item: T) -> T:
        entity_id = self._key(item)
        if entity_id in self._items:
            raise ConflictError(f"{self._entity} already exists", entity_id=str(entity_id))
        self._items[entity_id] = item
        return item

    def update(self, item: T, expected_version: int) -> T:
        entity_id = self._key(item)
        with self._lock:
            current = self._items.get(entity_id)
            if current is None:
                raise NotFoundError(self._entity, entity_id)
            if current.version != expected_version:  # type: ignore[attr-defined]
                raise StaleVersionError(self._entity, entity_id, expected_version)
            stored = replace(item, version=expected_version + 1)  # type: ignore[type-var]
            self._items[entity_id] = stored
            return stored

    def remove(self, entity_id: UUID) -> None:
        with self._lock:
            self._items.pop(entity_id, None)

    def select(self, predicate: Callable[[T], bool]) -> List[T]:
        with self._lock:
            return [item for item in self._items.values() if predicate(item)]


class InMemoryUnitRepository(_VersionedStore[Unit]):
    def __init__(self) -> None:
        super().__init__("Unit", lambda unit: unit.unit_id)


class InMemoryBookingRepository(_VersionedStore[Booking]):
    def __init__(self) -> None:
        super().__init__("Booking", lambda booking: booking.booking_id)

    def count_for_month(self, tenant_id: UUID, year: int, month: int) -> int:
        start, end = month_bounds(year, month)
        return len(self.select(lambda b: b.tenant_id == tenant_id and start <= b.created_at < end))

    def add(self, booking: Booking) -> Booking:
        with self._lock:
            if any(
                b.tenant_id == booking.tenant_id and b.booking_number == booking.booking_number
                for b in self._items.values()
            ):
                raise ConflictError(
                    "Booking number already in use",
                    booking_number=booking.booking_number,
                )
            return self._insert(booking)


class InMemoryApprovalRepository(_VersionedStore[Approval]):
    def __init__(self) -> None:
        super().__init__("Approval", lambda approval: approval.approval_id)

    def list(
        self,
        tenant_id: UUID,
        *,
        status: Optional[ApprovalStatus] = None,
        entity_id: Optional[UUID] = None,
        role: Optional[str] = None,
        assigned_to: Optional[UUID] = None,
    ) -> List[Approval]:
        def matches(approval: Approval) -> bool:
            if approval.tenant_id != tenant_id:
                return False
            if status is not None and approval.status is not status:
                return False
            if entity_id is not None and approval.entity_id != entity_id:
                return False
            level = approval.current()
            if role is not None and (level is None or level.role != role):
                return False
            if assigned_to is not None and (level is None or level.assigned_to != assigned_to):
                return False
            return True

        return sorted(self.select(matches), key=lambda a: a.created_at, reverse=True)


class InMemoryPaymentScheduleRepository(_VersionedStore[PaymentSchedule]):
    def __init__(self) -> None:
        super().__init__("PaymentSchedule", lambda schedule: schedule.schedule_id)

    def get_by_booking(self, booking_id: UUID) -> Optional[PaymentSchedule]:
        found = self.select(lambda s: s.booking_id == booking_id)
        return found[0] if found else None

    def add(self, schedule: PaymentSchedule) -> PaymentSchedule:
        with self._lock:
            if any(s.booking_id == schedule.booking_id for s in self._items.values()):
                raise ConflictError(
                    "Payment schedule already exists for this booking",
                    booking_id=str(schedule.booking_id),
                )
            return self._insert(schedule)


class InMemoryPaymentScheduleTemplateRepository(_VersionedStore[PaymentScheduleTemplate]):
    def __init__(self) -> None:
        super().__init__("PaymentScheduleTemplate", lambda template: template.template_id)

    def delete(self, template_id: UUID) -> None:
        self.remove(template_id)

    def list(
        self,
        tenant_id: UUID,
        *,
        project_id: Optional[UUID] = None,
        is_default: Optional[bool] = None,
    ) -> List[PaymentScheduleTemplate]:
        def matches(template: PaymentScheduleTemplate) -> bool:
            if template.tenant_id != tenant_id:
                return False
            if project_id is not None and template.project_id not in (project_id, None):
                return False
            if is_default is not None and template.is_default != is_default:
                return False
            return True

        return sorted(self.select(matches), key=lambda t: t.name)

    def clear_default(
        self, tenant_id: UUID, project_id: Optional[UUID], except_id: Optional[UUID] = None
    ) -> None:
        with self._lock:
            for template_id, template in list(self._items.items()):
                if (
                    template_id != except_id
                    and template.tenant_id == tenant_id
                    and template.project_id == project_id
                    and template.is_default
                ):
                    self._items[template_id] = replace(
                        template, is_default=False, version=template.version + 1
                    )


class InMemoryLeadRepository(_VersionedStore[Lead]):
    def __init__(self) -> None:
        super().__init__("Lead", lambda lead: lead.lead_id)

    def mark_converted(self, lead_id: UUID) -> Lead:
        with self._lock:
            lead = self._items.get(lead_id)
            if lead is None:
                raise NotFoundError("Lead", lead_id)
            converted = replace(lead, status=LeadStatus.CONVERTED)
            self._items[lead_id] = converted
            return converted


class InMemoryProjectRepository:
    def __init__(self) -> None:
        self._projects = _VersionedStore[Project]("Project", lambda p: p.project_id)
        self._towers = _VersionedStore[Tower]("Tower", lambda t: t.tower_id)

    def add_project(self, project: Project) -> Project:
        return self._projects.add(project)

    def add_tower(self, tower: Tower) -> Tower:
        return self._towers.add(tower)

    def get_project(self, project_id: UUID) -> Optional[Project]:
        return self._projects.get(project_id)

    def get_tower(self, tower_id: UUID) -> Optional[Tower]:
        return self._towers.get(tower_id)


__all__ = [
    "InMemoryUnitRepository",
    "InMemoryBookingRepository",
    "InMemoryApprovalRepository",
    "InMemoryPaymentScheduleRepository",
    "InMemoryPaymentScheduleTemplateRepository",
    "InMemoryLeadRepository",
    "InMemoryProjectRepository",
]
