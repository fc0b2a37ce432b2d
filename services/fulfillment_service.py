"""
Template sale fulfillment.

Turns a COMPLETED template sale into delivered access:
- issues a license key and download token
- emails them to the customer
- invites pro/enterprise customers to the private GitHub team
- records the outcome on the sale and upserts the customer record

Process:
1. Claim: read the sale, check it may be fulfilled, then compare-and-set it
   to FULFILLING. Only one caller can win the claim for a given sale; the
   others get AlreadyFulfilledError, InvalidSaleStateError or
   FulfillmentConflictError and cause no side effects.
2. Side effects (outside any lock): credentials, email, GitHub access.
   Email and GitHub failures are soft: logged, reported as False, never fatal.
3. Commit: sale -> FULFILLED with outcome metadata, then upsert the customer.
4. Any exception after the claim releases it (FAILED_ROLLBACK, metadata as it
   stood at claim time plus `fulfillingError`) and is re-raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from config import Settings
from domain.credentials import AccessCredentials, generate_access_credentials
from domain.errors import FulfillmentConflictError, InvalidInputError, SaleNotFoundError
from domain.fulfillment_state import (
    FulfillmentStatus,
    claim_metadata,
    fulfilled_metadata,
    rollback_metadata,
)
from domain.github_username import normalize_github_username
from domain.sale import TemplateSale
from domain.template_package import TemplatePackage
from domain.time import utc_now
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.delivery_email_service import DeliveryNotifier
from services.github_access_service import AccessGrantor, AccessGrantResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class FulfillmentRequest:
    """
    Request to fulfil the sale created for a checkout session.
    """
    session_id: str
    customer_email: str
    package: TemplatePackage
    customer_name: Optional[str] = None
    company_name: Optional[str] = None
    github_username: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FulfillmentResult:
    """
    What the customer received.

    access_expires_at: None for lifetime access
    email_sent / github_access_granted: outcome of the soft side effects
    """
    license_key: str
    download_token: str
    download_url: str
    support_tier: str
    access_expires_at: Optional[datetime]
    email_sent: bool
    github_access_granted: bool
    github_team_id: Optional[str]
    github_username: Optional[str]


class TemplateFulfillmentService:
    def __init__(
        self,
        settings: Settings,
        sales: SupabaseTemplateSaleRepository,
        customers: SupabaseTemplateCustomerRepository,
        notifier: DeliveryNotifier,
        grantor: AccessGrantor,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings
        self._sales = sales
        self._customers = customers
        self._notifier = notifier
        self._grantor = grantor
        self._clock = clock
        self._claim_timeout = timedelta(seconds=settings.claim_timeout_seconds)

    def fulfill_template_sale(self, request: FulfillmentRequest) -> FulfillmentResult:
        """
        Fulfil a template sale exactly once.

        Raises:
            SaleNotFoundError: no sale for request.session_id
            InvalidSaleStateError: sale not COMPLETED
            AlreadyFulfilledError: sale already fulfilled
            FulfillmentConflictError: another attempt holds the claim
            InvalidInputError: request package does not match the sale
            Exception: infrastructure failures, after the claim is released
        """

        claimed = self._claim(request)
        latest = claimed

        try:
            username = normalize_github_username(request.github_username or claimed.github_username)
            credentials = generate_access_credentials(
                request.package,
                self._settings.app_base_url,
                self._clock(),
            )

            email_sent = self._send_delivery_email(claimed, request, credentials)
            access = self._grant_repository_access(claimed, request, username)

            committed = self._sales.compare_and_set_fulfillment(
                claimed,
                FulfillmentStatus.FULFILLED,
                fulfilled_metadata(
                    claimed.metadata,
                    fulfilled_at=self._clock(),
                    email_sent=email_sent,
                    github_access=access.success,
                    access_credentials=credentials.to_metadata(),
                    github_username=username,
                ),
                github_username=username,
            )
            if committed is None:
                raise FulfillmentConflictError(
                    "Fulfillment claim was taken over before commit",
                    details={"sale_id": claimed.sale_id},
                )
            latest = committed

            customer = self._customers.upsert_for_sale(
                sale_id=claimed.sale_id,
                email=request.customer_email,
                package=request.package,
                license_key=credentials.license_key,
                download_token=credentials.download_token,
                support_tier=request.package.support_tier,
                access_expires_at=credentials.expires_at,
                metadata={
                    "emailDelivered": email_sent,
                    "githubAccessGranted": access.success,
                    "onboardingCompleted": False,
                    "githubUsername": username,
                },
                github_team_id=access.team_id,
                github_username=username,
            )
        except Exception as exc:
            self._rollback(latest, claimed.metadata, exc)
            raise

        logger.info(
            f"Template sale {claimed.sale_id} fulfilled",
            extra={
                "sale_id": claimed.sale_id,
                "package": request.package.value,
                "email_sent": email_sent,
                "github_access_granted": access.success,
            },
        )

        return FulfillmentResult(
            license_key=customer.license_key,
            download_token=customer.download_token,
            download_url=credentials.download_url,
            support_tier=customer.support_tier,
            access_expires_at=credentials.expires_at,
            email_sent=email_sent,
            github_access_granted=access.success,
            github_team_id=access.team_id,
            github_username=username,
        )

    def _claim(self, request: FulfillmentRequest) -> TemplateSale:
        now = self._clock()
        sale = self._sales.get_by_session_id(request.session_id)
        if sale is None:
            raise SaleNotFoundError("Sale record not found", details={"session_id": request.session_id})

        sale.ensure_claimable(now, self._claim_timeout)

        if sale.package is not request.package:
            raise InvalidInputError(
                "Requested package does not match the purchased package",
                details={"sale_id": sale.sale_id, "purchased": sale.package.value},
            )

        claimed = self._sales.compare_and_set_fulfillment(
            sale,
            FulfillmentStatus.FULFILLING,
            claim_metadata(sale.metadata, now),
        )
        if claimed is None:
            # Lost the race. Report what the winner left behind if we can.
            current = self._sales.get_by_session_id(request.session_id)
            if current is not None:
                current.ensure_claimable(now, self._claim_timeout)
            raise FulfillmentConflictError(
                "Sale was modified concurrently; retry fulfillment",
                details={"sale_id": sale.sale_id},
            )

        logger.info(f"Claimed template sale {claimed.sale_id} for fulfillment", extra={"sale_id": claimed.sale_id})
        return claimed

    def _send_delivery_email(
        self,
        sale: TemplateSale,
        request: FulfillmentRequest,
        credentials: AccessCredentials,
    ) -> bool:
        try:
            result = self._notifier.send(
                customer_email=request.customer_email,
                package=request.package,
                credentials=credentials,
                customer_name=request.customer_name,
                company_name=request.company_name or sale.company_name,
            )
        except Exception as e:
            logger.error(
                f"Delivery email raised for sale {sale.sale_id}: {e}",
                exc_info=True,
                extra={"sale_id": sale.sale_id},
            )
            return False

        if not result.success:
            logger.warning(
                f"Delivery email not sent for sale {sale.sale_id}: {result.error}",
                extra={"sale_id": sale.sale_id},
            )
        return result.success

    def _grant_repository_access(
        self,
        sale: TemplateSale,
        request: FulfillmentRequest,
        username: Optional[str],
    ) -> AccessGrantResult:
        if not request.package.grants_repository_access:
            return AccessGrantResult(success=False)

        try:
            result = self._grantor.grant(
                email=request.customer_email,
                package=request.package,
                sale_id=sale.sale_id,
                github_username=username,
            )
        except Exception as e:
            # Fulfillment continues; access can be granted later through the override path.
            logger.error(
                f"GitHub access grant raised for sale {sale.sale_id}: {e}",
                exc_info=True,
                extra={"sale_id": sale.sale_id},
            )
            return AccessGrantResult(success=False, error=str(e))

        if not result.success:
            logger.warning(
                f"GitHub access not granted for sale {sale.sale_id}: {result.error}",
                extra={"sale_id": sale.sale_id},
            )
        return result

    def _rollback(self, current: TemplateSale, claimed_metadata: Mapping[str, Any], error: Exception) -> None:
        """Release the claim. Never raises; the caller re-raises `error`."""

        released_metadata: Dict[str, Any] = rollback_metadata(
            claimed_metadata,
            error_message=str(error) or type(error).__name__,
            failed_at=self._clock(),
        )
        try:
            released = self._sales.compare_and_set_fulfillment(
                current,
                FulfillmentStatus.FAILED_ROLLBACK,
                released_metadata,
            )
        except Exception:
            logger.exception(
                f"Rollback failed for template sale {current.sale_id}; claim may stay held until it times out",
                extra={"sale_id": current.sale_id},
            )
            return

        if released is None:
            logger.error(
                f"Rollback skipped for template sale {current.sale_id}: sale changed since it was claimed",
                extra={"sale_id": current.sale_id},
            )
            return

        logger.warning(
            f"Fulfillment of template sale {current.sale_id} failed and was rolled back: {error}",
            extra={"sale_id": current.sale_id},
        )


__all__ = [
    "FulfillmentRequest",
    "FulfillmentResult",
    "TemplateFulfillmentService",
]
