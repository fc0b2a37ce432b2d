"""
Template Sales API Endpoints.

Fulfillment (called by the checkout webhook) and the operator GitHub
username override. Both require the fulfillment shared secret.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from api.dependencies import get_fulfillment_service, get_override_service, require_fulfillment_token
from api.models import (
    ErrorResponse,
    FulfillRequest,
    FulfillResponse,
    GithubOverrideRequest as APIGithubOverrideRequest,
    GithubOverrideResponse,
    InvitationResponse,
)
from services.fulfillment_service import FulfillmentRequest, TemplateFulfillmentService
from services.github_override_service import GithubOverrideRequest, GithubOverrideService

router = APIRouter(dependencies=[Depends(require_fulfillment_token)])


@router.post(
    "/template-sales/fulfill",
    response_model=FulfillResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Fulfill Template Sale",
    description="Issue credentials, send the delivery email and grant repository access for a completed sale."
)
def fulfill_template_sale(
    request: FulfillRequest,
    service: TemplateFulfillmentService = Depends(get_fulfillment_service),
):
    """
    Fulfil a completed template sale exactly once.

    **Errors:**
    - 404 `SALE_NOT_FOUND`: no sale for the session
    - 409 `SALE_NOT_COMPLETED`: sale is not paid
    - 409 `ALREADY_FULFILLED`: credentials were already delivered
    - 409 `FULFILLMENT_IN_PROGRESS`: another attempt is running, retry later

    Email and GitHub failures do not fail the request; they are reported in
    `email_sent` and `github_access_granted`.
    """
    result = service.fulfill_template_sale(
        FulfillmentRequest(
            session_id=request.session_id,
            customer_email=request.customer_email,
            package=request.package,
            customer_name=request.customer_name,
            company_name=request.company_name,
            github_username=request.github_username,
        )
    )

    return FulfillResponse(
        license_key=result.license_key,
        download_token=result.download_token,
        download_url=result.download_url,
        support_tier=result.support_tier,
        access_expires_at=result.access_expires_at,
        email_sent=result.email_sent,
        github_access_granted=result.github_access_granted,
        github_team_id=result.github_team_id,
        github_username=result.github_username,
    )


@router.post(
    "/admin/template-sales/github-access",
    response_model=GithubOverrideResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Override GitHub Username",
    description="Correct the GitHub username on a sale and optionally retry the team invitation."
)
def override_github_access(
    request: APIGithubOverrideRequest,
    service: GithubOverrideService = Depends(get_override_service),
    x_operator_email: Optional[str] = Header(default=None),
):
    result = service.override_github_username(
        GithubOverrideRequest(
            github_username=request.github_username,
            sale_id=request.sale_id,
            customer_email=request.customer_email,
            retry=request.retry,
            performed_by=x_operator_email or "system",
        )
    )

    invitation = None
    if result.invitation is not None:
        invitation = InvitationResponse(
            success=result.invitation.success,
            team_id=result.invitation.team_id,
            invite_url=result.invitation.invite_url,
            error=result.invitation.error,
            github_username=result.invitation.github_username,
        )

    return GithubOverrideResponse(
        sale_id=result.sale_id,
        customer_email=result.customer_email,
        github_username=result.github_username,
        retried=result.retried,
        invitation=invitation,
        message=result.message,
    )
