"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class WorkItemClosedError(DomainError):
    """Raised when a mutation targets a work item that has closed_at set."""

    def __init__(self, work_item_id: object) -> None:
        super().__init__(
            code="WORK_ITEM_CLOSED",
            http_status=409,
            message="Work item is closed",
            details={"workItemId": str(work_item_id)},
        )


class InvalidTransitionError(DomainError):
    """Status change rejected by the work item state machine."""


class UnmappedOrderStatusError(DomainError):
    """No status is defined for an (order type, financial status) pair."""

    def __init__(self, order_type: object, financial_status: object) -> None:
        super().__init__(
            code="ORDER_STATUS_UNMAPPED",
            http_status=422,
            message=f"No work item status defined for order type {order_type!r}",
            details={"orderType": order_type, "financialStatus": financial_status},
        )


class RemoteServiceError(DomainError):
    """Shopify / Graph call failed; safe to retry."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(
            code=f"{service.upper()}_UNAVAILABLE",
            http_status=502,
            message=message,
            details={"service": service},
        )


class DuplicateRecordError(Exception):
    """Insert hit a unique constraint; callers treat it as a duplicate outcome."""

    def __init__(self, entity: str, key: str | None = None) -> None:
        super().__init__(f"Duplicate {entity}" + (f": {key}" if key else ""))
        self.entity = entity
        self.key = key
