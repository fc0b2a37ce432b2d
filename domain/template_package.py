"""
Domain: Template package tiers.

A template sale is for exactly one package tier. The tier decides:
- the support tier recorded on the customer record
- how long download access lasts (None = lifetime)
- whether private repository access is granted
- which template files are included in a download
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from .time import require_utc_timestamp


class TemplatePackage(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def support_tier(self) -> str:
        return SUPPORT_TIERS[self]

    @property
    def grants_repository_access(self) -> bool:
        return self in (TemplatePackage.PRO, TemplatePackage.ENTERPRISE)

    def access_expiration(self, now: datetime) -> Optional[datetime]:
        """Return when download access ends for a purchase made at `now`."""

        require_utc_timestamp("now", now)
        window_days = ACCESS_WINDOW_DAYS[self]
        if window_days is None:
            return None
        return now + timedelta(days=window_days)


SUPPORT_TIERS: Dict[TemplatePackage, str] = {
    TemplatePackage.BASIC: "email",
    TemplatePackage.PRO: "priority_email",
    TemplatePackage.ENTERPRISE: "phone_email_dedicated",
}

ACCESS_WINDOW_DAYS: Dict[TemplatePackage, Optional[int]] = {
    TemplatePackage.BASIC: 30,
    TemplatePackage.PRO: 90,
    TemplatePackage.ENTERPRISE: None,
}

_DISPLAY_NAMES: Dict[TemplatePackage, str] = {
    TemplatePackage.BASIC: "Basic Package",
    TemplatePackage.PRO: "Pro Package",
    TemplatePackage.ENTERPRISE: "Enterprise Package",
}

# (path inside the template source, tier that unlocks it)
# "pro+" means pro and enterprise.
_TEMPLATE_FILES: List[tuple[str, str]] = [
    ("src/", "all"),
    ("package.json", "all"),
    ("README.md", "all"),
    ("docs/", "all"),
    (".env.example", "all"),
    ("src/lib/white-label/", "pro+"),
    ("scripts/deploy/", "pro+"),
    ("docs/video-tutorials/", "pro+"),
    ("enterprise/", "enterprise"),
    ("scripts/enterprise-setup/", "enterprise"),
    ("docs/custom-integrations/", "enterprise"),
]


def template_files_for_package(package: TemplatePackage) -> List[str]:
    """List the template paths included in a download for `package`."""

    included: List[str] = []
    for path, tier in _TEMPLATE_FILES:
        if tier == "all" or tier == package.value:
            included.append(path)
        elif tier == "pro+" and package.grants_repository_access:
            included.append(path)
    return included
