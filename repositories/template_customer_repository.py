"""
Template customer repository (persistence).

Persistence for TemplateCustomer records. `sale_id` is unique, so writes made
during fulfillment are upserts keyed by the sale: fulfilling the same sale
again updates the existing row instead of creating a second one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.customer import TemplateCustomer
from domain.template_package import TemplatePackage
from domain.time import parse_optional_utc_datetime, to_iso_utc, utc_now
from repositories.client import execute_query

_CUSTOMERS_TABLE: str = "template_sale_customers"

_UNSET: Any = object()


def _row_to_customer(row: Mapping[str, Any]) -> TemplateCustomer:
    """Convert a Supabase row into a TemplateCustomer."""

    return TemplateCustomer(
        customer_id=str(row["id"]),
        sale_id=str(row["sale_id"]),
        email=str(row["email"]),
        package=TemplatePackage(str(row["package"])),
        license_key=str(row["license_key"]),
        download_token=str(row["download_token"]),
        support_tier=str(row["support_tier"]),
        github_team_id=row.get("github_team_id"),
        github_username=row.get("github_username"),
        access_expires_at=parse_optional_utc_datetime(row.get("access_expires_at")),
        metadata=dict(row.get("metadata") or {}),
        created_at=parse_optional_utc_datetime(row.get("created_at")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at")),
    )


class SupabaseTemplateCustomerRepository:
    """Reads and upserts against the `template_sale_customers` table."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(_CUSTOMERS_TABLE)

    def upsert_for_sale(
        self,
        sale_id: str,
        email: str,
        package: TemplatePackage,
        license_key: str,
        download_token: str,
        support_tier: str,
        access_expires_at: Optional[datetime],
        metadata: Mapping[str, Any],
        github_team_id: Optional[str] = None,
        github_username: Optional[str] = None,
    ) -> TemplateCustomer:
        """
        Create or replace the customer record for `sale_id`.

        Returns:
            The stored TemplateCustomer
        """

        payload: Dict[str, Any] = {
            "sale_id": sale_id,
            "email": email,
            "package": package.value,
            "license_key": license_key,
            "download_token": download_token,
            "support_tier": support_tier,
            "github_team_id": github_team_id,
            "github_username": github_username,
            "access_expires_at": (
                to_iso_utc(access_expires_at, name="access_expires_at") if access_expires_at else None
            ),
            "metadata": dict(metadata),
            "updated_at": utc_now().isoformat(),
        }

        rows = execute_query(self._table().upsert(payload, on_conflict="sale_id"), "upsert customer")
        if not rows:
            raise RuntimeError(f"Failed to upsert customer: no row returned for sale {sale_id}")
        return _row_to_customer(rows[0])

    def get_by_sale_id(self, sale_id: str) -> Optional[TemplateCustomer]:
        rows = execute_query(
            self._table().select("*").eq("sale_id", sale_id).limit(1),
            "get customer by sale",
        )
        return _row_to_customer(rows[0]) if rows else None

    def get_by_download_token(self, download_token: str) -> Optional[TemplateCustomer]:
        rows = execute_query(
            self._table().select("*").eq("download_token", download_token).limit(1),
            "get customer by download token",
        )
        return _row_to_customer(rows[0]) if rows else None

    def list_by_email(self, email: str) -> List[TemplateCustomer]:
        rows = execute_query(
            self._table().select("*").eq("email", email),
            "list customers by email",
        )
        return [_row_to_customer(row) for row in rows]

    def update_github_access(
        self,
        sale_id: str,
        github_username: Optional[str],
        metadata: Mapping[str, Any],
        github_team_id: Optional[str] = _UNSET,
    ) -> None:
        payload: Dict[str, Any] = {
            "github_username": github_username,
            "metadata": dict(metadata),
            "updated_at": utc_now().isoformat(),
        }
        if github_team_id is not _UNSET:
            payload["github_team_id"] = github_team_id

        execute_query(
            self._table().update(payload).eq("sale_id", sale_id),
            "update customer GitHub access",
        )


__all__ = ["SupabaseTemplateCustomerRepository"]
