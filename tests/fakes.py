"""
In-memory test doubles.

FakeSupabaseClient understands the subset of the supabase-py query builder the
repositories use (select/insert/update/upsert with eq/in_/order/limit). Each
`execute()` runs under one lock, so a guarded UPDATE behaves like a single
atomic statement the way it does in Postgres.
"""

from __future__ import annotations

import copy
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from postgrest.exceptions import APIError

from domain.credentials import AccessCredentials
from domain.template_package import TemplatePackage
from services.delivery_email_service import DeliveryResult
from services.github_access_service import AccessGrantResult

_UNIQUE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "template_sales": ("id", "session_id"),
    "template_sale_customers": ("id", "sale_id", "license_key", "download_token"),
    "template_download_audits": ("id",),
}


@dataclass
class FakeResponse:
    data: List[Dict[str, Any]]
    error: Any = None


class FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self._client = client
        self._table = table
        self._operation = "select"
        self._payload: Optional[Dict[str, Any]] = None
        self._on_conflict = "id"
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[Tuple[str, bool]] = None
        self._limit: Optional[int] = None

    def select(self, *columns: str) -> "FakeQuery":
        self._operation = "select"
        return self

    def insert(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._operation = "insert"
        self._payload = dict(payload)
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._operation = "update"
        self._payload = dict(payload)
        return self

    def upsert(self, payload: Dict[str, Any], on_conflict: str = "id") -> "FakeQuery":
        self._operation = "upsert"
        self._payload = dict(payload)
        self._on_conflict = on_conflict
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def execute(self) -> FakeResponse:
        return self._client._execute(self)


class FakeSupabaseClient:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = threading.Lock()
        self._failures: Dict[Tuple[str, str], Exception] = {}
        self.statements: List[Tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail_on(self, table: str, operation: str, error: Optional[Exception] = None) -> None:
        """Make every `operation` on `table` raise until cleared with `clear_failures()`."""

        self._failures[(table, operation)] = error or APIError(
            {"message": f"simulated {operation} failure on {table}", "code": "08006"}
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self.tables[table])

    def _execute(self, query: FakeQuery) -> FakeResponse:
        with self._lock:
            self.statements.append((query._table, query._operation))
            failure = self._failures.get((query._table, query._operation))
            if failure is not None:
                raise failure

            rows = self.tables[query._table]
            if query._operation == "select":
                return FakeResponse(copy.deepcopy(self._select(rows, query)))
            if query._operation == "insert":
                return FakeResponse([copy.deepcopy(self._insert(query._table, query._payload or {}))])
            if query._operation == "update":
                matched = [row for row in rows if all(f(row) for f in query._filters)]
                for row in matched:
                    row.update(copy.deepcopy(query._payload or {}))
                return FakeResponse(copy.deepcopy(matched))
            if query._operation == "upsert":
                payload = query._payload or {}
                key = query._on_conflict
                for row in rows:
                    if row.get(key) == payload.get(key):
                        self._check_unique(query._table, payload, ignore=row)
                        row.update(copy.deepcopy(payload))
                        return FakeResponse([copy.deepcopy(row)])
                return FakeResponse([copy.deepcopy(self._insert(query._table, payload))])
            raise AssertionError(f"Unsupported operation {query._operation}")

    def _select(self, rows: List[Dict[str, Any]], query: FakeQuery) -> List[Dict[str, Any]]:
        matched = [row for row in rows if all(f(row) for f in query._filters)]
        if query._order is not None:
            column, desc = query._order
            matched.sort(key=lambda row: row.get(column) or "", reverse=desc)
        if query._limit is not None:
            matched = matched[: query._limit]
        return matched

    def _insert(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(payload)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._check_unique(table, row)
        self.tables[table].append(row)
        return row

    def _check_unique(self, table: str, row: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        for column in _UNIQUE_COLUMNS.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            for existing in self.tables[table]:
                if existing is not ignore and existing.get(column) == value:
                    raise APIError(
                        {"message": f"duplicate key value violates unique constraint on {column}", "code": "23505"}
                    )


def seed_sale(
    client: FakeSupabaseClient,
    session_id: str = "cs_test_1",
    email: str = "buyer@example.com",
    package: TemplatePackage = TemplatePackage.PRO,
    status: str = "COMPLETED",
    sale_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    fulfillment_status: Optional[str] = "unfulfilled",
    github_username: Optional[str] = None,
    created_at: str = "2025-01-01T00:00:00+00:00",
) -> str:
    """Insert a template_sales row directly and return its id."""

    row = {
        "id": sale_id or str(uuid4()),
        "session_id": session_id,
        "email": email,
        "package": package.value,
        "status": status,
        "amount": 29900,
        "company_name": None,
        "github_username": github_username,
        "metadata": metadata or {},
        "fulfillment_status": fulfillment_status,
        "fulfillment_version": 0,
        "completed_at": created_at if status == "COMPLETED" else None,
        "created_at": created_at,
        "updated_at": created_at,
    }
    client.tables["template_sales"].append(row)
    return row["id"]


class RecordingNotifier:
    """DeliveryNotifier double that records calls."""

    def __init__(self, success: bool = True, error: Optional[Exception] = None) -> None:
        self.success = success
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(
        self,
        customer_email: str,
        package: TemplatePackage,
        credentials: AccessCredentials,
        customer_name: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> DeliveryResult:
        with self._lock:
            self.calls.append(
                {
                    "customer_email": customer_email,
                    "package": package,
                    "credentials": credentials,
                    "customer_name": customer_name,
                    "company_name": company_name,
                }
            )
        if self.error is not None:
            raise self.error
        if not self.success:
            return DeliveryResult(success=False, error="Brevo unavailable")
        return DeliveryResult(success=True, message_id="msg_1")


class RecordingGrantor:
    """AccessGrantor double that records calls."""

    def __init__(
        self,
        success: bool = True,
        error: Optional[Exception] = None,
        on_grant: Optional[Callable[[], None]] = None,
    ) -> None:
        self.success = success
        self.error = error
        self.on_grant = on_grant
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def grant(
        self,
        email: str,
        package: TemplatePackage,
        sale_id: str,
        github_username: Optional[str] = None,
    ) -> AccessGrantResult:
        with self._lock:
            self.calls.append(
                {"email": email, "package": package, "sale_id": sale_id, "github_username": github_username}
            )
        if self.on_grant is not None:
            self.on_grant()
        if self.error is not None:
            raise self.error
        if not self.success:
            return AccessGrantResult(success=False, error="GitHub API unavailable")
        return AccessGrantResult(
            success=True,
            team_id=f"saas-starter-{package.value}",
            github_username=github_username,
        )
