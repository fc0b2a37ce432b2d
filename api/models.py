"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.template_package import TemplatePackage


# ============================================================================
# Fulfillment Models
# ============================================================================

class FulfillRequest(BaseModel):
    """Request to fulfil a completed template sale."""
    session_id: str = Field(..., min_length=1, description="Checkout session ID the sale was created for")
    customer_email: str = Field(..., min_length=3, description="Email the delivery is sent to")
    package: TemplatePackage
    customer_name: Optional[str] = None
    company_name: Optional[str] = None
    github_username: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "cs_test_1",
                "customer_email": "buyer@example.com",
                "package": "pro",
                "customer_name": "Ada Buyer",
                "github_username": "ada-buyer"
            }
        }


class FulfillResponse(BaseModel):
    """Credentials and side-effect outcomes of a fulfillment."""
    license_key: str
    download_token: str
    download_url: str
    support_tier: str  # "email", "priority_email" or "phone_email_dedicated"
    access_expires_at: Optional[datetime] = None  # None = lifetime
    email_sent: bool
    github_access_granted: bool
    github_team_id: Optional[str] = None
    github_username: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "license_key": "PRO-1A2B3C4D-5E6F7A8B-9C0D1E2F",
                "download_token": "q7Vx0lS1nX2m...",
                "download_url": "https://app.example.com/template-download?token=q7Vx0lS1nX2m...",
                "support_tier": "priority_email",
                "access_expires_at": "2026-04-01T12:00:00Z",
                "email_sent": True,
                "github_access_granted": True,
                "github_team_id": "saas-starter-pro",
                "github_username": "ada-buyer"
            }
        }


# ============================================================================
# GitHub Override Models
# ============================================================================

class GithubOverrideRequest(BaseModel):
    """Operator correction of a sale's GitHub username."""
    sale_id: Optional[str] = None
    customer_email: Optional[str] = None
    github_username: str = Field(..., min_length=1, max_length=39)
    retry: bool = Field(True, description="Re-send the GitHub invitation with the new username")

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "sale_1",
                "github_username": "New-User",
                "retry": True
            }
        }


class InvitationResponse(BaseModel):
    """Outcome of a GitHub invitation attempt."""
    success: bool
    team_id: Optional[str] = None
    invite_url: Optional[str] = None
    error: Optional[str] = None
    github_username: Optional[str] = None


class GithubOverrideResponse(BaseModel):
    """Result of a GitHub username override."""
    sale_id: str
    customer_email: str
    github_username: str
    retried: bool
    invitation: Optional[InvitationResponse] = None
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "sale_1",
                "customer_email": "buyer@example.com",
                "github_username": "new-user",
                "retried": True,
                "invitation": {"success": True, "team_id": "saas-starter-pro"},
                "message": "GitHub invitation sent successfully"
            }
        }


# ============================================================================
# Download Models
# ============================================================================

class DownloadResponse(BaseModel):
    """Authorized template download."""
    sale_id: str
    package: TemplatePackage
    format: str  # "zip" or "tar"
    filename: str
    files: List[str]
    access_expires_at: Optional[datetime] = None


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Template already delivered",
                "code": "ALREADY_FULFILLED",
                "details": {"sale_id": "sale_1"}
            }
        }
