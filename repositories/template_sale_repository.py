"""
Template sale repository (persistence).

This module provides *only* persistence operations for the TemplateSale domain
entity. Business rules (who may claim a sale, when) live in the domain and
service layers; this module reads rows and applies guarded writes.

Concurrency:
Every write that changes fulfillment state or ownership data is a
compare-and-set on `fulfillment_version`:

    UPDATE template_sales SET ..., fulfillment_version = v + 1
    WHERE id = :id AND fulfillment_version = v

Exactly one writer holding version `v` can succeed. Losers get no rows back
and must re-read.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.fulfillment_state import FulfillmentState, FulfillmentStatus
from domain.sale import SaleStatus, TemplateSale
from domain.template_package import TemplatePackage
from domain.time import parse_optional_utc_datetime, to_iso_utc, utc_now
from repositories.client import execute_query

# Supabase table name for template sales.
# Keep this aligned with sql/template_sales.sql.
_SALES_TABLE: str = "template_sales"

_UNSET: Any = object()
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _row_to_sale(row: Mapping[str, Any]) -> TemplateSale:
    """Convert a Supabase row into a TemplateSale."""

    metadata = row.get("metadata") or {}
    return TemplateSale(
        sale_id=str(row["id"]),
        session_id=str(row["session_id"]),
        email=str(row["email"]),
        package=TemplatePackage(str(row["package"])),
        status=SaleStatus(str(row["status"])),
        metadata=dict(metadata),
        fulfillment=FulfillmentState.from_record(row.get("fulfillment_status"), metadata),
        fulfillment_version=int(row.get("fulfillment_version") or 0),
        github_username=row.get("github_username"),
        company_name=row.get("company_name"),
        amount=row.get("amount"),
        created_at=parse_optional_utc_datetime(row.get("created_at")),
        completed_at=parse_optional_utc_datetime(row.get("completed_at")),
    )


class SupabaseTemplateSaleRepository:
    """Reads and guarded writes against the `template_sales` table."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(_SALES_TABLE)

    def get_by_session_id(self, session_id: str) -> Optional[TemplateSale]:
        rows = execute_query(
            self._table().select("*").eq("session_id", session_id).limit(1),
            "get sale by session",
        )
        return _row_to_sale(rows[0]) if rows else None

    def get_by_id(self, sale_id: str) -> Optional[TemplateSale]:
        rows = execute_query(
            self._table().select("*").eq("id", sale_id).limit(1),
            "get sale",
        )
        return _row_to_sale(rows[0]) if rows else None

    def find_latest_by_email(
        self,
        email: str,
        customer_sale_ids: Sequence[str] = (),
    ) -> Optional[TemplateSale]:
        """
        Most recently created sale bought with `email`, or owned by one of
        `customer_sale_ids` (sales whose customer record carries the email).
        """

        candidates: List[TemplateSale] = []

        rows = execute_query(
            self._table().select("*").eq("email", email).order("created_at", desc=True).limit(1),
            "find sale by email",
        )
        candidates.extend(_row_to_sale(row) for row in rows)

        if customer_sale_ids:
            rows = execute_query(
                self._table()
                .select("*")
                .in_("id", list(customer_sale_ids))
                .order("created_at", desc=True)
                .limit(1),
                "find sale by customer email",
            )
            candidates.extend(_row_to_sale(row) for row in rows)

        if not candidates:
            return None

        return max(candidates, key=lambda sale: sale.created_at or _EPOCH)

    def compare_and_set_fulfillment(
        self,
        sale: TemplateSale,
        status: FulfillmentStatus,
        metadata: Mapping[str, Any],
        github_username: Optional[str] = _UNSET,
    ) -> Optional[TemplateSale]:
        """
        Move `sale` to a new fulfillment state if nobody else wrote it since it
        was read.

        Returns:
            The updated sale, or None when the version check failed.
        """

        payload: Dict[str, Any] = {
            "fulfillment_status": status.value,
            "metadata": dict(metadata),
        }
        if github_username is not _UNSET:
            payload["github_username"] = github_username
        return self._compare_and_set(sale, payload, "update fulfillment state")

    def compare_and_set_github_username(
        self,
        sale: TemplateSale,
        github_username: str,
        metadata: Mapping[str, Any],
    ) -> Optional[TemplateSale]:
        return self._compare_and_set(
            sale,
            {"github_username": github_username, "metadata": dict(metadata)},
            "update GitHub username",
        )

    def _compare_and_set(
        self,
        sale: TemplateSale,
        payload: Dict[str, Any],
        action: str,
    ) -> Optional[TemplateSale]:
        payload = {
            **payload,
            "fulfillment_version": sale.fulfillment_version + 1,
            "updated_at": utc_now().isoformat(),
        }
        rows = execute_query(
            self._table()
            .update(payload)
            .eq("id", sale.sale_id)
            .eq("fulfillment_version", sale.fulfillment_version),
            action,
        )
        return _row_to_sale(rows[0]) if rows else None

    def create_sale(
        self,
        session_id: str,
        email: str,
        package: TemplatePackage,
        status: SaleStatus = SaleStatus.PENDING,
        amount: Optional[int] = None,
        company_name: Optional[str] = None,
        github_username: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> TemplateSale:
        """
        Insert a new sale row. Checkout normally does this; scripts and demos
        use it to seed data.
        """

        now = utc_now()
        payload: Dict[str, Any] = {
            "id": str(uuid4()),
            "session_id": session_id,
            "email": email,
            "package": package.value,
            "status": status.value,
            "amount": amount,
            "company_name": company_name,
            "github_username": github_username,
            "metadata": {},
            "fulfillment_status": FulfillmentStatus.UNFULFILLED.value,
            "fulfillment_version": 0,
            "completed_at": to_iso_utc(completed_at, name="completed_at") if completed_at else None,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        rows = execute_query(self._table().insert(payload), "record sale")
        return _row_to_sale(rows[0] if rows else payload)


__all__ = ["SupabaseTemplateSaleRepository"]
