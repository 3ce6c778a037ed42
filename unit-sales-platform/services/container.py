"""
Composition root.

Builds every service once, with its collaborators passed in, and registers
the approval resolution handlers. Callers pick the storage: the in-memory
repositories (tests, single process) or the Supabase-backed ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.approval import EntityType
from domain.clock import Clock, SystemClock
from repositories.base import (
    ApprovalRepository,
    BookingRepository,
    LeadRepository,
    PaymentScheduleRepository,
    PaymentScheduleTemplateRepository,
    ProjectRepository,
    UnitRepository,
)
from repositories.memory import (
    InMemoryApprovalRepository,
    InMemoryBookingRepository,
    InMemoryLeadRepository,
    InMemoryPaymentScheduleRepository,
    InMemoryPaymentScheduleTemplateRepository,
    InMemoryProjectRepository,
    InMemoryUnitRepository,
)
from services.approval_service import ApprovalWorkflow, ApproverDirectory
from services.booking_service import BookingOrchestrator
from services.business_rules import BusinessRulesProvider, StaticBusinessRules
from services.payment_schedule_service import PaymentScheduleEngine
from services.payment_schedule_template_service import PaymentScheduleTemplateService
from services.unit_service import UnitLifecycle


@dataclass(frozen=True, slots=True)
class Repositories:
    units: UnitRepository
    bookings: BookingRepository
    approvals: ApprovalRepository
    schedules: PaymentScheduleRepository
    templates: PaymentScheduleTemplateRepository
    leads: LeadRepository
    projects: ProjectRepository

    @classmethod
    def in_memory(cls) -> "Repositories":
        return cls(
            units=InMemoryUnitRepository(),
            bookings=InMemoryBookingRepository(),
            approvals=InMemoryApprovalRepository(),
            schedules=InMemoryPaymentScheduleRepository(),
            templates=InMemoryPaymentScheduleTemplateRepository(),
            leads=InMemoryLeadRepository(),
            projects=InMemoryProjectRepository(),
        )

    @classmethod
    def supabase(cls) -> "Repositories":
        from repositories.approval_repository import SupabaseApprovalRepository
        from repositories.booking_repository import SupabaseBookingRepository
        from repositories.lead_repository import SupabaseLeadRepository
        from repositories.payment_schedule_repository import (
            SupabasePaymentScheduleRepository,
            SupabasePaymentScheduleTemplateRepository,
        )
        from repositories.project_repository import SupabaseProjectRepository
        from repositories.unit_repository import SupabaseUnitRepository

        return cls(
            units=SupabaseUnitRepository(),
            bookings=SupabaseBookingRepository(),
            approvals=SupabaseApprovalRepository(),
            schedules=SupabasePaymentScheduleRepository(),
            templates=SupabasePaymentScheduleTemplateRepository(),
            leads=SupabaseLeadRepository(),
            projects=SupabaseProjectRepository(),
        )


@dataclass(frozen=True, slots=True)
class Services:
    repositories: Repositories
    clock: Clock
    rules: BusinessRulesProvider
    units: UnitLifecycle
    approvals: ApprovalWorkflow
    bookings: BookingOrchestrator
    schedules: PaymentScheduleEngine
    templates: PaymentScheduleTemplateService


def build_services(
    repositories: Optional[Repositories] = None,
    *,
    clock: Optional[Clock] = None,
    rules: Optional[BusinessRulesProvider] = None,
    directory: Optional[ApproverDirectory] = None,
) -> Services:
    repositories = repositories or Repositories.in_memory()
    clock = clock or SystemClock()
    rules = rules or StaticBusinessRules()

    units = UnitLifecycle(repositories.units, rules, clock)
    approvals = ApprovalWorkflow(repositories.approvals, rules, clock, directory)
    bookings = BookingOrchestrator(
        repositories.bookings,
        repositories.leads,
        repositories.projects,
        units,
        approvals,
        rules,
        clock,
    )
    schedules = PaymentScheduleEngine(
        repositories.schedules,
        repositories.templates,
        bookings,
        approvals,
        rules,
        clock,
    )
    templates = PaymentScheduleTemplateService(repositories.templates, clock)

    approvals.register_resolution_handler(EntityType.BOOKING, bookings.resolve_approval)
    approvals.register_resolution_handler(EntityType.PAYMENT_SCHEDULE, schedules.resolve_approval)

    return Services(
        repositories=repositories,
        clock=clock,
        rules=rules,
        units=units,
        approvals=approvals,
        bookings=bookings,
        schedules=schedules,
        templates=templates,
    )


__all__ = ["Repositories", "Services", "build_services"]
