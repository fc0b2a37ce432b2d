"""
Domain: Template sales.

A TemplateSale is created when checkout completes (outside this service) and
is only mutated by fulfillment and by operator overrides. It is never deleted
here.

Contract excerpts relevant here:
- Fulfillment may only proceed when status is COMPLETED.
- At most one fulfillment attempt may hold the claim on a sale at a time.
- A fulfilled sale is never fulfilled again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import AlreadyFulfilledError, FulfillmentConflictError, InvalidSaleStateError
from .fulfillment_state import FulfillmentState
from .template_package import TemplatePackage
from .time import require_utc_timestamp


class SaleStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


@dataclass(frozen=True, slots=True)
class TemplateSale:
    """
    Snapshot of a template sale row.

    `fulfillment_version` is the optimistic-lock counter; every fulfillment
    state write must present the version it read.
    """

    sale_id: str
    session_id: str
    email: str
    package: TemplatePackage
    status: SaleStatus
    metadata: Mapping[str, Any] = field(default_factory=dict)
    fulfillment: FulfillmentState = field(default_factory=FulfillmentState)
    fulfillment_version: int = 0
    github_username: Optional[str] = None
    company_name: Optional[str] = None
    amount: Optional[int] = None  # minor units (cents)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.completed_at is not None:
            require_utc_timestamp("completed_at", self.completed_at)

    def ensure_claimable(self, now: datetime, claim_timeout: timedelta) -> None:
        """
        Raise unless a new fulfillment attempt may claim this sale.

        Raises:
            InvalidSaleStateError: status is not COMPLETED
            AlreadyFulfilledError: the sale was already fulfilled
            FulfillmentConflictError: a live claim is held by another attempt
        """

        if self.status is not SaleStatus.COMPLETED:
            raise InvalidSaleStateError(
                "Sale is not marked as completed",
                details={"sale_id": self.sale_id, "status": self.status.value},
            )
        if self.fulfillment.is_fulfilled:
            raise AlreadyFulfilledError(
                "Template already delivered",
                details={"sale_id": self.sale_id},
            )
        if self.fulfillment.claim_is_active(now, claim_timeout):
            raise FulfillmentConflictError(
                "Fulfillment already in progress for this sale",
                details={"sale_id": self.sale_id},
            )
