"""
Domain: Fulfillment state machine for a template sale.

    UNFULFILLED --claim--> FULFILLING --commit--> FULFILLED
                               |
                               +--rollback--> FAILED_ROLLBACK --claim--> FULFILLING

The state is persisted in its own column. The same information is mirrored
into the sale's free-form metadata using the legacy flags so rows written by
older code (flags only, no column) are still understood:

    fulfilling / fulfillingStartedAt
    fulfilled / fulfilledAt
    fulfillingError = {"message": ..., "at": ...}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .time import parse_optional_utc_datetime, require_utc_timestamp, to_iso_utc


class FulfillmentStatus(str, Enum):
    UNFULFILLED = "unfulfilled"
    FULFILLING = "fulfilling"
    FULFILLED = "fulfilled"
    FAILED_ROLLBACK = "failed_rollback"


@dataclass(frozen=True, slots=True)
class FulfillmentState:
    """
    Tagged fulfillment state.

    Only the fields belonging to `status` are populated:
    - FULFILLING: started_at
    - FULFILLED: fulfilled_at
    - FAILED_ROLLBACK: error, failed_at
    """

    status: FulfillmentStatus = FulfillmentStatus.UNFULFILLED
    started_at: Optional[datetime] = None
    fulfilled_at: Optional[datetime] = None
    error: Optional[str] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in ("started_at", "fulfilled_at", "failed_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_fulfilled(self) -> bool:
        return self.status is FulfillmentStatus.FULFILLED

    def claim_is_active(self, now: datetime, claim_timeout: timedelta) -> bool:
        """True while another attempt holds a claim that has not gone stale."""

        if self.status is not FulfillmentStatus.FULFILLING:
            return False
        if self.started_at is None:
            return True
        return now - self.started_at < claim_timeout

    @classmethod
    def from_record(cls, status: Optional[str], metadata: Optional[Mapping[str, Any]]) -> "FulfillmentState":
        """Rebuild the state from the status column and the legacy metadata flags."""

        metadata = metadata or {}
        error_info = metadata.get("fulfillingError")
        if not isinstance(error_info, Mapping):
            error_info = {}

        column = _parse_status(status)
        if metadata.get("fulfilled"):
            # A set flag always wins: it is never safe to fulfil twice.
            resolved = FulfillmentStatus.FULFILLED
        elif column is not None:
            resolved = column
        elif metadata.get("fulfilling"):
            resolved = FulfillmentStatus.FULFILLING
        elif error_info:
            resolved = FulfillmentStatus.FAILED_ROLLBACK
        else:
            resolved = FulfillmentStatus.UNFULFILLED

        if resolved is FulfillmentStatus.FULFILLING:
            return cls(resolved, started_at=parse_optional_utc_datetime(metadata.get("fulfillingStartedAt")))
        if resolved is FulfillmentStatus.FULFILLED:
            return cls(resolved, fulfilled_at=parse_optional_utc_datetime(metadata.get("fulfilledAt")))
        if resolved is FulfillmentStatus.FAILED_ROLLBACK:
            return cls(
                resolved,
                error=error_info.get("message"),
                failed_at=parse_optional_utc_datetime(error_info.get("at")),
            )
        return cls()


def _parse_status(value: Optional[str]) -> Optional[FulfillmentStatus]:
    """Column value as a status; unknown values defer to the metadata flags."""

    if not value:
        return None
    try:
        return FulfillmentStatus(value)
    except ValueError:
        return None


def claim_metadata(metadata: Mapping[str, Any], started_at: datetime) -> Dict[str, Any]:
    return {
        **metadata,
        "fulfilling": True,
        "fulfillingStartedAt": to_iso_utc(started_at, name="started_at"),
    }


def fulfilled_metadata(
    claimed: Mapping[str, Any],
    *,
    fulfilled_at: datetime,
    email_sent: bool,
    github_access: bool,
    access_credentials: Mapping[str, Any],
    github_username: Optional[str],
) -> Dict[str, Any]:
    merged = {
        **claimed,
        "fulfilled": True,
        "fulfilledAt": to_iso_utc(fulfilled_at, name="fulfilled_at"),
        "fulfilling": False,
        "emailSent": email_sent,
        "githubAccess": github_access,
        "accessCredentials": dict(access_credentials),
        "githubUsername": github_username,
    }
    merged.pop("fulfillingError", None)
    return merged


def rollback_metadata(claimed: Mapping[str, Any], *, error_message: str, failed_at: datetime) -> Dict[str, Any]:
    """Release a claim, leaving the sale retryable (no `fulfilled` flag)."""

    released = {
        **claimed,
        "fulfilling": False,
        "fulfillingError": {
            "message": error_message,
            "at": to_iso_utc(failed_at, name="failed_at"),
        },
    }
    released.pop("fulfilled", None)
    released.pop("fulfilledAt", None)
    return released
