"""
Tests for `services/download_service.py`.

Every attempt must leave exactly one audit row, whatever the outcome.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from domain.errors import DownloadDeniedError, InvalidInputError
from domain.template_package import TemplatePackage
from fakes import FakeSupabaseClient, seed_sale
from repositories.download_audit_repository import SupabaseDownloadAuditRepository
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.download_rate_limiter import SlidingWindowRateLimiter
from services.download_service import TemplateDownloadService

NOW = datetime(2025, 2, 1, tzinfo=timezone.utc)


def _service(
    supabase: FakeSupabaseClient,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
) -> TemplateDownloadService:
    return TemplateDownloadService(
        customers=SupabaseTemplateCustomerRepository(supabase),
        sales=SupabaseTemplateSaleRepository(supabase),
        audits=SupabaseDownloadAuditRepository(supabase),
        clock=lambda: NOW,
        rate_limiter=rate_limiter,
    )


def _seed(
    supabase: FakeSupabaseClient,
    package: TemplatePackage = TemplatePackage.PRO,
    status: str = "COMPLETED",
    expires_at: Optional[datetime] = NOW + timedelta(days=30),
) -> str:
    sale_id = seed_sale(supabase, package=package, status=status)
    SupabaseTemplateCustomerRepository(supabase).upsert_for_sale(
        sale_id=sale_id,
        email="buyer@example.com",
        package=package,
        license_key="PRO-AAAAAAAA-BBBBBBBB-CCCCCCCC",
        download_token="tok_valid",
        support_tier=package.support_tier,
        access_expires_at=expires_at,
        metadata={},
    )
    return sale_id


def test_valid_token_is_authorized_and_audited(supabase) -> None:
    sale_id = _seed(supabase)

    grant = _service(supabase).authorize_download("tok_valid", "203.0.113.9", "curl/8.0", "tar")

    assert grant.package is TemplatePackage.PRO
    assert grant.filename == "saas-starter-pro.tar.gz"
    assert "src/lib/white-label/" in grant.files
    assert "enterprise/" not in grant.files

    audits = supabase.rows("template_download_audits")
    assert len(audits) == 1
    assert audits[0]["status"] == "SUCCESS"
    assert audits[0]["sale_id"] == sale_id
    assert audits[0]["ip_address"] == "203.0.113.9"
    assert audits[0]["user_agent"] == "curl/8.0"
    assert audits[0]["format"] == "tar"


def test_unknown_token_is_denied(supabase) -> None:
    with pytest.raises(DownloadDeniedError) as excinfo:
        _service(supabase).authorize_download("tok_unknown", "203.0.113.9")

    assert excinfo.value.status_code == 404
    audits = supabase.rows("template_download_audits")
    assert [a["status"] for a in audits] == ["INVALID_TOKEN"]
    assert audits[0]["sale_id"] is None


def test_expired_access_is_denied(supabase) -> None:
    sale_id = _seed(supabase, package=TemplatePackage.BASIC, expires_at=NOW - timedelta(days=1))

    with pytest.raises(DownloadDeniedError) as excinfo:
        _service(supabase).authorize_download("tok_valid", "203.0.113.9")

    assert excinfo.value.status_code == 403
    audits = supabase.rows("template_download_audits")
    assert audits[0]["status"] == "EXPIRED"
    assert audits[0]["sale_id"] == sale_id


def test_lifetime_access_never_expires(supabase) -> None:
    _seed(supabase, package=TemplatePackage.ENTERPRISE, expires_at=None)

    grant = _service(supabase).authorize_download("tok_valid", "203.0.113.9")

    assert "enterprise/" in grant.files


def test_refunded_sale_is_denied(supabase) -> None:
    _seed(supabase, status="REFUNDED")

    with pytest.raises(DownloadDeniedError) as excinfo:
        _service(supabase).authorize_download("tok_valid", "203.0.113.9")

    assert excinfo.value.status_code == 404
    assert supabase.rows("template_download_audits")[0]["status"] == "INVALID_TOKEN"


def test_unsupported_format_is_rejected_without_audit(supabase) -> None:
    _seed(supabase)

    with pytest.raises(InvalidInputError):
        _service(supabase).authorize_download("tok_valid", "203.0.113.9", fmt="rar")

    assert supabase.rows("template_download_audits") == []


def test_lookup_failure_is_audited_as_error(supabase) -> None:
    supabase.fail_on("template_sale_customers", "select")

    with pytest.raises(RuntimeError):
        _service(supabase).authorize_download("tok_valid", "203.0.113.9")

    assert supabase.rows("template_download_audits")[0]["status"] == "ERROR"


def test_audit_failure_does_not_change_outcome(supabase) -> None:
    _seed(supabase)
    supabase.fail_on("template_download_audits", "insert")

    grant = _service(supabase).authorize_download("tok_valid", "203.0.113.9")

    assert grant.format == "zip"


def test_sixth_attempt_within_window_is_rate_limited(supabase) -> None:
    """Verify 5 attempts per IP and token are allowed, the 6th gets 429 and a RATE_LIMIT audit row."""

    _seed(supabase)
    service = _service(supabase)

    for _ in range(5):
        service.authorize_download("tok_valid", "203.0.113.9")

    with pytest.raises(DownloadDeniedError) as excinfo:
        service.authorize_download("tok_valid", "203.0.113.9")

    assert excinfo.value.status_code == 429
    assert excinfo.value.audit_status == "RATE_LIMIT"
    statuses = [a["status"] for a in supabase.rows("template_download_audits")]
    assert statuses == ["SUCCESS"] * 5 + ["RATE_LIMIT"]

    # Another client address has its own allowance.
    grant = service.authorize_download("tok_valid", "198.51.100.4")
    assert grant.package is TemplatePackage.PRO


def test_rate_limit_applies_before_token_lookup(supabase) -> None:
    limiter = SlidingWindowRateLimiter(max_attempts=1)
    service = _service(supabase, rate_limiter=limiter)

    with pytest.raises(DownloadDeniedError):
        service.authorize_download("tok_guess", "203.0.113.9")
    supabase.fail_on("template_sale_customers", "select")
    with pytest.raises(DownloadDeniedError) as excinfo:
        service.authorize_download("tok_guess", "203.0.113.9")

    assert excinfo.value.status_code == 429
    statuses = [a["status"] for a in supabase.rows("template_download_audits")]
    assert statuses == ["INVALID_TOKEN", "RATE_LIMIT"]
