"""
Domain: Template download audit events.

Every download attempt, successful or not, produces one audit entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class DownloadStatus(str, Enum):
    SUCCESS = "SUCCESS"
    RATE_LIMIT = "RATE_LIMIT"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED = "EXPIRED"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class DownloadAuditEntry:
    download_token: str
    status: DownloadStatus
    ip_address: str
    format: str
    created_at: datetime
    user_agent: Optional[str] = None
    reason: Optional[str] = None
    sale_id: Optional[str] = None
    customer_id: Optional[str] = None
    package: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
