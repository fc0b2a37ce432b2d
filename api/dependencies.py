"""
FastAPI dependencies.

Builds services from Settings and the shared Supabase client, and guards the
server-to-server endpoints with the fulfillment shared secret.

Tests replace these through `app.dependency_overrides`.
"""

import hmac
import logging
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from config import Settings, get_settings
from repositories.client import get_supabase_client
from repositories.download_audit_repository import SupabaseDownloadAuditRepository
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.delivery_email_service import BrevoDeliveryNotifier
from services.download_rate_limiter import SlidingWindowRateLimiter
from services.download_service import TemplateDownloadService
from services.fulfillment_service import TemplateFulfillmentService
from services.github_access_service import GitHubAccessGrantor
from services.github_override_service import GithubOverrideService

logger = logging.getLogger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def _notifier() -> BrevoDeliveryNotifier:
    return BrevoDeliveryNotifier(get_settings())


@lru_cache(maxsize=1)
def _grantor() -> GitHubAccessGrantor:
    return GitHubAccessGrantor(get_settings())


@lru_cache(maxsize=1)
def _download_rate_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter()


def get_fulfillment_service(settings: Settings = Depends(get_app_settings)) -> TemplateFulfillmentService:
    client = get_supabase_client()
    return TemplateFulfillmentService(
        settings=settings,
        sales=SupabaseTemplateSaleRepository(client),
        customers=SupabaseTemplateCustomerRepository(client),
        notifier=_notifier(),
        grantor=_grantor(),
    )


def get_override_service(settings: Settings = Depends(get_app_settings)) -> GithubOverrideService:
    client = get_supabase_client()
    return GithubOverrideService(
        sales=SupabaseTemplateSaleRepository(client),
        customers=SupabaseTemplateCustomerRepository(client),
        grantor=_grantor(),
        claim_timeout=timedelta(seconds=settings.claim_timeout_seconds),
    )


def get_download_service() -> TemplateDownloadService:
    client = get_supabase_client()
    return TemplateDownloadService(
        customers=SupabaseTemplateCustomerRepository(client),
        sales=SupabaseTemplateSaleRepository(client),
        audits=SupabaseDownloadAuditRepository(client),
        rate_limiter=_download_rate_limiter(),
    )


def require_fulfillment_token(
    x_template_fulfillment_token: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Accept the shared secret from X-Template-Fulfillment-Token or an
    `Authorization: Bearer` header.
    """

    secret = settings.fulfillment_shared_secret
    if not secret:
        logger.error("TEMPLATE_FULFILLMENT_SECRET is not configured - rejecting fulfillment request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    presented = x_template_fulfillment_token
    if not presented and authorization and authorization.lower().startswith("bearer "):
        presented = authorization[len("bearer "):].strip()

    if not presented or not hmac.compare_digest(presented.encode("utf-8"), secret.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
