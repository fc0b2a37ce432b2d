"""
Template download authorization.

Validates a download token handed out on fulfillment and decides which
template files the holder may download. Every attempt is written to the
download audit log, whatever the outcome.

Attempts are rate limited per client IP and token (5 per 15 minutes).

Outcomes:
- too many attempts for this IP and token               -> 429 RATE_LIMIT
- unknown token, or its sale is missing / not COMPLETED -> 404 INVALID_TOKEN
- access window over                                    -> 403 EXPIRED
- otherwise                                             -> DownloadGrant, SUCCESS
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from domain.customer import TemplateCustomer
from domain.download_audit import DownloadAuditEntry, DownloadStatus
from domain.errors import DownloadDeniedError, InvalidInputError
from domain.sale import SaleStatus
from domain.template_package import TemplatePackage, template_files_for_package
from domain.time import utc_now
from repositories.download_audit_repository import SupabaseDownloadAuditRepository
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.download_rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

DOWNLOAD_FORMATS = ("zip", "tar")


@dataclass(frozen=True, slots=True)
class DownloadGrant:
    customer: TemplateCustomer
    package: TemplatePackage
    format: str
    files: List[str]

    @property
    def filename(self) -> str:
        extension = "zip" if self.format == "zip" else "tar.gz"
        return f"saas-starter-{self.package.value}.{extension}"


class TemplateDownloadService:
    def __init__(
        self,
        customers: SupabaseTemplateCustomerRepository,
        sales: SupabaseTemplateSaleRepository,
        audits: SupabaseDownloadAuditRepository,
        clock: Callable[[], datetime] = utc_now,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        self._customers = customers
        self._sales = sales
        self._audits = audits
        self._clock = clock
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter()

    def authorize_download(
        self,
        token: str,
        ip_address: str,
        user_agent: Optional[str] = None,
        fmt: str = "zip",
    ) -> DownloadGrant:
        """
        Authorize a download.

        Raises:
            InvalidInputError: empty token or unsupported format (not audited)
            DownloadDeniedError: token rejected (audited with the reason)
        """

        if not token:
            raise InvalidInputError("Download token is required")
        if fmt not in DOWNLOAD_FORMATS:
            raise InvalidInputError(
                "Unsupported download format",
                details={"format": fmt, "allowed": list(DOWNLOAD_FORMATS)},
            )

        try:
            if not self._rate_limiter.allow(f"{ip_address}:{token}"):
                logger.warning(f"Download rate limit exceeded for {ip_address}")
                raise DownloadDeniedError(
                    "Too many download attempts. Please try again later.",
                    429,
                    DownloadStatus.RATE_LIMIT.value,
                )
            grant = self._authorize(token, fmt)
        except DownloadDeniedError as denied:
            self._audit(
                token,
                DownloadStatus(denied.audit_status),
                ip_address,
                user_agent,
                fmt,
                reason=denied.reason,
                customer=denied.customer,
            )
            raise
        except Exception as e:
            self._audit(token, DownloadStatus.ERROR, ip_address, user_agent, fmt, reason=str(e))
            raise

        self._audit(token, DownloadStatus.SUCCESS, ip_address, user_agent, fmt, customer=grant.customer)
        logger.info(
            f"Template download authorized for sale {grant.customer.sale_id}",
            extra={"sale_id": grant.customer.sale_id, "package": grant.package.value, "format": fmt},
        )
        return grant

    def _authorize(self, token: str, fmt: str) -> DownloadGrant:
        customer = self._customers.get_by_download_token(token)
        if customer is None:
            raise DownloadDeniedError("Invalid download token", 404, DownloadStatus.INVALID_TOKEN.value)

        sale = self._sales.get_by_id(customer.sale_id)
        if sale is None or sale.status is not SaleStatus.COMPLETED:
            raise DownloadDeniedError(
                "Sale not found or not completed",
                404,
                DownloadStatus.INVALID_TOKEN.value,
                customer=customer,
            )

        if customer.is_access_expired(self._clock()):
            raise DownloadDeniedError(
                "Download access has expired",
                403,
                DownloadStatus.EXPIRED.value,
                customer=customer,
            )

        return DownloadGrant(
            customer=customer,
            package=customer.package,
            format=fmt,
            files=template_files_for_package(customer.package),
        )

    def _audit(
        self,
        token: str,
        status: DownloadStatus,
        ip_address: str,
        user_agent: Optional[str],
        fmt: str,
        reason: Optional[str] = None,
        customer: Optional[TemplateCustomer] = None,
    ) -> None:
        entry = DownloadAuditEntry(
            download_token=token,
            status=status,
            ip_address=ip_address,
            format=fmt,
            created_at=self._clock(),
            user_agent=user_agent,
            reason=reason,
            sale_id=customer.sale_id if customer else None,
            customer_id=customer.customer_id if customer else None,
            package=customer.package.value if customer else None,
        )
        try:
            self._audits.record(entry)
        except Exception as e:
            logger.error(f"Failed to record download audit ({status.value}): {e}", exc_info=True)


__all__ = ["DOWNLOAD_FORMATS", "DownloadGrant", "TemplateDownloadService"]
