"""
GitHub username override (administrative correction).

Lets an operator fix a missing or mistyped GitHub username on a template sale
after fulfillment and optionally re-run the GitHub invitation with it.

Lookup policy:
- sale_id first (exact match)
- otherwise the most recently created sale whose own email, or whose customer
  record's email, matches customer_email
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from domain.errors import FulfillmentConflictError, InvalidInputError, SaleNotFoundError
from domain.github_username import is_valid_github_username, normalize_github_username
from domain.sale import TemplateSale
from domain.template_package import TemplatePackage
from domain.time import to_iso_utc, utc_now
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.github_access_service import AccessGrantor, AccessGrantResult

logger = logging.getLogger(__name__)

# Concurrent writers (fulfillment claim or commit, another override) bump the version.
# The override never writes while a fulfillment claim is live: the commit
# presents the version it claimed with.
_MAX_WRITE_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class GithubOverrideRequest:
    github_username: str
    sale_id: Optional[str] = None
    customer_email: Optional[str] = None
    retry: bool = True
    performed_by: str = "system"


@dataclass(frozen=True, slots=True)
class GithubOverrideResult:
    sale_id: str
    customer_email: str
    github_username: str
    retried: bool
    invitation: Optional[AccessGrantResult]
    message: str


class GithubOverrideService:
    def __init__(
        self,
        sales: SupabaseTemplateSaleRepository,
        customers: SupabaseTemplateCustomerRepository,
        grantor: AccessGrantor,
        clock: Callable[[], datetime] = utc_now,
        claim_timeout: timedelta = timedelta(minutes=15),
    ) -> None:
        self._sales = sales
        self._customers = customers
        self._grantor = grantor
        self._clock = clock
        self._claim_timeout = claim_timeout

    def override_github_username(self, request: GithubOverrideRequest) -> GithubOverrideResult:
        """
        Persist a corrected GitHub username and optionally retry the invitation.

        Raises:
            InvalidInputError: no identifier given, or the username is malformed
            SaleNotFoundError: no sale matches the identifiers
            FulfillmentConflictError: a fulfillment attempt holds the claim on the sale
        """

        sale_id = (request.sale_id or "").strip() or None
        customer_email = (request.customer_email or "").strip() or None
        if not sale_id and not customer_email:
            raise InvalidInputError("Provide either saleId or customerEmail")

        if not is_valid_github_username(request.github_username):
            raise InvalidInputError(
                "GitHub username must be 1-39 characters using letters, numbers, or single hyphens"
            )
        username = normalize_github_username(request.github_username)
        if not username:
            raise InvalidInputError("Unable to normalize GitHub username. Check formatting and try again.")

        sale = self._locate_sale(sale_id, customer_email)
        if sale is None:
            raise SaleNotFoundError(
                "Template sale not found",
                details={"sale_id": sale_id, "customer_email": customer_email},
            )

        customer = self._customers.get_by_sale_id(sale.sale_id)
        recipient = customer.email if customer is not None else sale.email
        override_info = {
            "username": username,
            "overriddenAt": to_iso_utc(self._clock(), name="overridden_at"),
            "overriddenBy": request.performed_by,
        }

        sale = self._write_sale_username(sale, username, override_info)

        if customer is not None:
            customer_metadata: Dict[str, Any] = {
                **customer.metadata,
                "githubUsername": username,
                "githubOverride": override_info,
            }
            self._customers.update_github_access(sale.sale_id, username, customer_metadata)

        logger.info(
            f"GitHub username for template sale {sale.sale_id} set to {username}",
            extra={"sale_id": sale.sale_id, "performed_by": request.performed_by},
        )

        should_retry = request.retry and sale.package is not TemplatePackage.BASIC
        invitation: Optional[AccessGrantResult] = None
        if should_retry:
            invitation = self._retry_invitation(recipient, sale, username)
            if invitation.success and customer is not None:
                self._customers.update_github_access(
                    sale.sale_id,
                    username,
                    {**customer_metadata, "githubAccessGranted": True},
                    github_team_id=invitation.team_id,
                )

        if invitation is not None and invitation.success:
            message = "GitHub invitation sent successfully"
        elif should_retry:
            message = (invitation.error if invitation else None) or "GitHub invitation retry attempted"
        else:
            message = "GitHub username updated without retry"

        return GithubOverrideResult(
            sale_id=sale.sale_id,
            customer_email=recipient,
            github_username=username,
            retried=should_retry,
            invitation=invitation,
            message=message,
        )

    def _locate_sale(self, sale_id: Optional[str], customer_email: Optional[str]) -> Optional[TemplateSale]:
        if sale_id:
            sale = self._sales.get_by_id(sale_id)
            if sale is not None:
                return sale

        if customer_email:
            owned = [customer.sale_id for customer in self._customers.list_by_email(customer_email)]
            return self._sales.find_latest_by_email(customer_email, owned)

        return None

    def _write_sale_username(
        self,
        sale: TemplateSale,
        username: str,
        override_info: Dict[str, Any],
    ) -> TemplateSale:
        current = sale
        for _ in range(_MAX_WRITE_ATTEMPTS):
            if current.fulfillment.claim_is_active(self._clock(), self._claim_timeout):
                raise FulfillmentConflictError(
                    "Template sale is being fulfilled; retry the override once it completes",
                    details={"sale_id": current.sale_id},
                )

            metadata = {**current.metadata, "githubUsername": username, "githubOverride": override_info}
            updated = self._sales.compare_and_set_github_username(current, username, metadata)
            if updated is not None:
                return updated

            refreshed = self._sales.get_by_id(current.sale_id)
            if refreshed is None:
                raise SaleNotFoundError("Template sale not found", details={"sale_id": current.sale_id})
            current = refreshed

        raise RuntimeError(f"Failed to update GitHub username: sale {sale.sale_id} kept changing")

    def _retry_invitation(self, email: str, sale: TemplateSale, username: str) -> AccessGrantResult:
        try:
            return self._grantor.grant(
                email=email,
                package=sale.package,
                sale_id=sale.sale_id,
                github_username=username,
            )
        except Exception as e:
            logger.error(
                f"GitHub invitation retry raised for sale {sale.sale_id}: {e}",
                exc_info=True,
                extra={"sale_id": sale.sale_id},
            )
            return AccessGrantResult(success=False, error=str(e) or type(e).__name__)


__all__ = ["GithubOverrideRequest", "GithubOverrideResult", "GithubOverrideService"]
