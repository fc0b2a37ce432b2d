"""
Template Download API Endpoints.

Validates a download token and returns the download manifest for the
customer's package.
"""

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_download_service
from api.models import DownloadResponse, ErrorResponse
from domain.credentials import DOWNLOAD_PATH
from services.download_service import TemplateDownloadService

router = APIRouter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


@router.get(
    DOWNLOAD_PATH,
    response_model=DownloadResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Authorize Template Download",
)
def authorize_template_download(
    request: Request,
    token: str = Query(..., min_length=1),
    format: str = Query("zip"),
    service: TemplateDownloadService = Depends(get_download_service),
):
    """
    Check a download token and list the files the customer may download.

    - 404: unknown token, or the sale is missing / not completed
    - 403: access window has expired
    - 429: more than 5 attempts for this IP and token in 15 minutes
    """
    grant = service.authorize_download(
        token=token,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        fmt=format,
    )

    return DownloadResponse(
        sale_id=grant.customer.sale_id,
        package=grant.package,
        format=grant.format,
        filename=grant.filename,
        files=grant.files,
        access_expires_at=grant.customer.access_expires_at,
    )
