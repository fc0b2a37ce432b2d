"""
Download audit repository (persistence).

Append-only log of template download attempts.
"""

from __future__ import annotations

from typing import Any, Dict

from supabase import Client  # type: ignore[import-not-found]

from domain.download_audit import DownloadAuditEntry
from domain.time import to_iso_utc
from repositories.client import execute_query

_AUDIT_TABLE: str = "template_download_audits"


class SupabaseDownloadAuditRepository:
    def __init__(self, client: Client) -> None:
        self._client = client

    def record(self, entry: DownloadAuditEntry) -> None:
        payload: Dict[str, Any] = {
            "download_token": entry.download_token,
            "status": entry.status.value,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent or None,
            "format": entry.format,
            "reason": entry.reason,
            "sale_id": entry.sale_id,
            "customer_id": entry.customer_id,
            "package": entry.package,
            "created_at": to_iso_utc(entry.created_at, name="created_at"),
        }
        execute_query(self._client.table(_AUDIT_TABLE).insert(payload), "record download audit")


__all__ = ["SupabaseDownloadAuditRepository"]
