"""
Payment schedule template management.

Templates are tenant-scoped and optionally tied to one project. At most one
default exists per (tenant, project) scope: once a template is stored as
the default, the previous default of that scope is cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from domain.actor import Actor
from domain.clock import Clock
from domain.errors import NotFoundError, ValidationError
from domain.payment_schedule_template import (
    PaymentScheduleTemplate,
    TemplateInstallment,
    validate_installments,
)
from repositories.base import PaymentScheduleTemplateRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TemplateChanges:
    name: Optional[str] = None
    description: Optional[str] = None
    installments: Optional[Sequence[TemplateInstallment]] = None
    is_default: Optional[bool] = None


class PaymentScheduleTemplateService:
    def __init__(self, templates: PaymentScheduleTemplateRepository, clock: Clock) -> None:
        self._templates = templates
        self._clock = clock

    def create_template(
        self,
        name: str,
        installments: Sequence[TemplateInstallment],
        actor: Actor,
        *,
        description: str = "",
        project_id: Optional[UUID] = None,
        is_default: bool = False,
    ) -> PaymentScheduleTemplate:
        """
        Raises:
            ValidationError: missing name, malformed installments, or
                percentages summing above 100%
        """

        if not name or not name.strip():
            raise ValidationError("Template name is required")
        items = tuple(installments)
        validate_installments(items)

        template = PaymentScheduleTemplate(
            template_id=uuid4(),
            tenant_id=actor.tenant_id,
            name=name.strip(),
            description=description,
            project_id=project_id,
            is_default=is_default,
            installments=items,
            created_by=actor.actor_id,
            created_at=self._clock.now(),
        )
        self._templates.add(template)
        if is_default:
            self._templates.clear_default(actor.tenant_id, project_id, except_id=template.template_id)
        logger.info(
            "Payment schedule template created",
            extra={"template_id": str(template.template_id), "is_default": is_default},
        )
        return template

    def get_template(self, template_id: UUID, actor: Actor) -> PaymentScheduleTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError("PaymentScheduleTemplate", template_id)
        actor.ensure_tenant(template.tenant_id, "PaymentScheduleTemplate")
        return template

    def list_templates(
        self,
        actor: Actor,
        *,
        project_id: Optional[UUID] = None,
        is_default: Optional[bool] = None,
    ) -> List[PaymentScheduleTemplate]:
        return self._templates.list(actor.tenant_id, project_id=project_id, is_default=is_default)

    def update_template(
        self, template_id: UUID, changes: TemplateChanges, actor: Actor
    ) -> PaymentScheduleTemplate:
        template = self.get_template(template_id, actor)
        updated = template
        if changes.name is not None:
            if not changes.name.strip():
                raise ValidationError("Template name is required")
            updated = replace(updated, name=changes.name.strip())
        if changes.description is not None:
            updated = replace(updated, description=changes.description)
        if changes.installments is not None:
            items = tuple(changes.installments)
            validate_installments(items)
            updated = replace(updated, installments=items)
        if changes.is_default is not None:
            updated = replace(updated, is_default=changes.is_default)

        updated = replace(updated, updated_by=actor.actor_id, updated_at=self._clock.now())
        stored = self._templates.update(updated, expected_version=template.version)
        if stored.is_default and not template.is_default:
            self._templates.clear_default(stored.tenant_id, stored.project_id, except_id=stored.template_id)
        logger.info("Payment schedule template updated", extra={"template_id": str(template_id)})
        return stored

    def delete_template(self, template_id: UUID, actor: Actor) -> None:
        self.get_template(template_id, actor)
        self._templates.delete(template_id)
        logger.info("Payment schedule template deleted", extra={"template_id": str(template_id)})


__all__ = ["TemplateChanges", "PaymentScheduleTemplateService"]
