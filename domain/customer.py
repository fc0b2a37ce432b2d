"""
Domain: Template customer record.

One record per sale (keyed by sale_id). Holds the credentials that were
delivered and the outcome of each delivery side effect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from .template_package import TemplatePackage
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class TemplateCustomer:
    """
    Durable record of granted access.

    access_expires_at: None means lifetime access.
    metadata: emailDelivered, githubAccessGranted, onboardingCompleted,
              githubUsername and any override history.
    """

    customer_id: str
    sale_id: str
    email: str
    package: TemplatePackage
    license_key: str
    download_token: str
    support_tier: str
    github_team_id: Optional[str] = None
    github_username: Optional[str] = None
    access_expires_at: Optional[datetime] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.access_expires_at is not None:
            require_utc_timestamp("access_expires_at", self.access_expires_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def is_access_expired(self, now: datetime) -> bool:
        return self.access_expires_at is not None and self.access_expires_at < now
