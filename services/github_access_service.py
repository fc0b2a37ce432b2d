"""
GitHub access management (Access Grantor).

Invites Pro and Enterprise customers to the private template repositories by
adding them to a tier-specific team in the GitHub organization. Basic
customers never get repository access.

Flow for pro/enterprise:
1. If the customer is already an active/pending team member, or has a
   pending org invitation (matched by email or login), reuse it.
2. Otherwise invite them into the team: by user id when the username resolves,
   falling back to an email invitation.

GitHub API errors and timeouts are returned as AccessGrantResult(success=False);
the caller decides whether that is fatal (fulfillment treats it as soft).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from config import Settings
from domain.github_username import normalize_github_username
from domain.template_package import TemplatePackage

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

_TEAM_SLUGS: Dict[TemplatePackage, str] = {
    TemplatePackage.PRO: "saas-starter-pro",
    TemplatePackage.ENTERPRISE: "saas-starter-enterprise",
}


@dataclass(frozen=True, slots=True)
class AccessGrantResult:
    success: bool
    team_id: Optional[str] = None
    invite_url: Optional[str] = None
    error: Optional[str] = None
    github_username: Optional[str] = None


class AccessGrantor(Protocol):
    def grant(
        self,
        email: str,
        package: TemplatePackage,
        sale_id: str,
        github_username: Optional[str] = None,
    ) -> AccessGrantResult:
        ...


class GitHubAccessGrantor:
    """AccessGrantor backed by the GitHub REST API."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.Client] = None) -> None:
        self._org = settings.github_org
        self._token = settings.github_access_token
        self._http = http_client or httpx.Client(
            base_url=GITHUB_API_URL,
            timeout=settings.collaborator_timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return self._http.request(method, path, headers=self._headers(), **kwargs)

    def grant(
        self,
        email: str,
        package: TemplatePackage,
        sale_id: str,
        github_username: Optional[str] = None,
    ) -> AccessGrantResult:
        """
        Grant repository access for a sale.

        Args:
            email: Customer email (used for email invitations and matching)
            package: Purchased tier
            sale_id: Sale being fulfilled (for the audit log line)
            github_username: Optional GitHub login supplied by the customer

        Returns:
            AccessGrantResult with the team slug on success
        """

        # Basic tier doesn't get private repo access; not an error.
        if not package.grants_repository_access:
            return AccessGrantResult(success=True)

        if not self._token or not self._org:
            return AccessGrantResult(
                success=False,
                error="GitHub access requires GITHUB_ACCESS_TOKEN and GITHUB_ORG environment variables",
            )

        username = normalize_github_username(github_username)
        team_slug = _TEAM_SLUGS[package]

        try:
            existing = self._find_existing_access(email, team_slug, username)
            if existing is not None:
                return existing

            invitation_id, invited_username = self._invite_to_team(email, team_slug, username)
        except httpx.HTTPError as e:
            logger.error(
                f"Failed to grant GitHub access for sale {sale_id}: {e}",
                extra={"sale_id": sale_id, "package": package.value},
            )
            return AccessGrantResult(success=False, error=str(e) or type(e).__name__)

        logger.info(
            f"GitHub access granted for sale {sale_id}",
            extra={
                "sale_id": sale_id,
                "package": package.value,
                "team_id": team_slug,
                "invitation_id": invitation_id,
                "github_username": invited_username,
            },
        )
        return AccessGrantResult(success=True, team_id=team_slug, github_username=invited_username)

    def _find_existing_access(
        self,
        email: str,
        team_slug: str,
        username: Optional[str],
    ) -> Optional[AccessGrantResult]:
        if username:
            response = self._request("GET", f"/orgs/{self._org}/teams/{team_slug}/memberships/{username}")
            if response.status_code == 200:
                state = response.json().get("state")
                if state in ("active", "pending"):
                    return AccessGrantResult(success=True, team_id=team_slug, github_username=username)
            elif response.status_code != 404:
                logger.warning(
                    f"GitHub access: unable to resolve existing membership for {username} "
                    f"(HTTP {response.status_code})"
                )

        response = self._request("GET", f"/orgs/{self._org}/invitations", params={"per_page": 100})
        if response.status_code != 200:
            logger.warning(f"GitHub access: unable to list pending invitations (HTTP {response.status_code})")
            return None

        for invite in response.json():
            invite_email = (invite.get("email") or "").lower()
            invite_login = (invite.get("login") or "").lower()
            if invite_email == email.lower() or (username and invite_login == username):
                return AccessGrantResult(
                    success=True,
                    team_id=team_slug,
                    github_username=invite_login or username,
                )
        return None

    def _invite_to_team(
        self,
        email: str,
        team_slug: str,
        username: Optional[str],
    ) -> tuple[int, Optional[str]]:
        team = self._request("GET", f"/orgs/{self._org}/teams/{team_slug}")
        team.raise_for_status()

        payload: Dict[str, Any] = {"role": "direct_member", "team_ids": [team.json()["id"]]}

        invitee_id = self._get_user_id(username) if username else None
        if invitee_id is not None:
            payload["invitee_id"] = invitee_id
        else:
            if username:
                logger.warning(
                    f"GitHub access: username {username} not found, falling back to email invitation"
                )
            payload["email"] = email

        invitation = self._request("POST", f"/orgs/{self._org}/invitations", json=payload)
        invitation.raise_for_status()
        return invitation.json()["id"], username

    def _get_user_id(self, username: str) -> Optional[int]:
        response = self._request("GET", f"/users/{username}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["id"]


__all__ = ["AccessGrantResult", "AccessGrantor", "GitHubAccessGrantor"]
