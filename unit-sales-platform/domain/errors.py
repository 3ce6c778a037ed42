"""
Typed error hierarchy for the unit sales core.

Every error carries a machine-readable ``code`` and a ``details`` mapping so
callers branch on the type, never on message text:

    UnitSalesError
    +-- NotFoundError        NOT_FOUND         referenced entity absent
    +-- ConflictError        CONFLICT          invalid transition, unit unavailable,
    |   |                                      duplicate schedule
    |   +-- StaleVersionError STALE_VERSION    optimistic-lock check failed
    +-- ValidationError      VALIDATION_ERROR  out-of-range input, bad totals,
    |                                          non-editable installment, overpayment
    +-- ForbiddenError       FORBIDDEN         cross-tenant reference, wrong approver

A pending approval is not an error; operations that need one return it in
their outcome object.
"""

from __future__ import annotations

from typing import Any


class UnitSalesError(Exception):
    """Base class for all errors raised by the core."""

    code: str = "UNIT_SALES_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class NotFoundError(UnitSalesError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found", entity=entity, entity_id=str(entity_id))
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(UnitSalesError):
    code = "CONFLICT"


class StaleVersionError(ConflictError):
    """Raised by repositories when a compare-and-swap update loses a race."""

    code = "STALE_VERSION"

    def __init__(self, entity: str, entity_id: Any, expected_version: int) -> None:
        super().__init__(
            f"{entity} was modified concurrently",
            entity=entity,
            entity_id=str(entity_id),
            expected_version=expected_version,
        )


class ValidationError(UnitSalesError):
    code = "VALIDATION_ERROR"


class ForbiddenError(UnitSalesError):
    code = "FORBIDDEN"


__all__ = [
    "UnitSalesError",
    "NotFoundError",
    "ConflictError",
    "StaleVersionError",
    "ValidationError",
    "ForbiddenError",
]
