"""
Tests for `services/github_access_service.py`.

GitHub is simulated with httpx.MockTransport.
"""

from __future__ import annotations

import json
from typing import Callable, Dict, List, Tuple

import httpx

from config import Settings
from domain.template_package import TemplatePackage
from services.github_access_service import GITHUB_API_URL, GitHubAccessGrantor

Route = Tuple[str, str]


class FakeGitHub:
    """Route table for MockTransport; unmatched requests answer 404."""

    def __init__(self, routes: Dict[Route, Callable[[httpx.Request], httpx.Response]]) -> None:
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return handler(request)

    def posted(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


def _grantor(settings: Settings, github: FakeGitHub) -> GitHubAccessGrantor:
    client = httpx.Client(base_url=GITHUB_API_URL, transport=httpx.MockTransport(github))
    return GitHubAccessGrantor(settings, http_client=client)


def _json(status: int, body) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=body)


def test_basic_package_makes_no_requests(settings) -> None:
    github = FakeGitHub({})

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.BASIC, "sale_1")

    assert result.success is True
    assert github.requests == []


def test_missing_configuration_is_a_failure() -> None:
    github = FakeGitHub({})
    grantor = _grantor(Settings(github_access_token="", github_org=""), github)

    result = grantor.grant("buyer@example.com", TemplatePackage.PRO, "sale_1", "octocat")

    assert result.success is False
    assert "GITHUB_ACCESS_TOKEN" in (result.error or "")
    assert github.requests == []


def test_invites_user_by_id_into_tier_team(settings) -> None:
    github = FakeGitHub(
        {
            ("GET", "/orgs/acme/invitations"): _json(200, []),
            ("GET", "/orgs/acme/teams/saas-starter-pro"): _json(200, {"id": 42}),
            ("GET", "/users/octocat"): _json(200, {"id": 7}),
            ("POST", "/orgs/acme/invitations"): _json(201, {"id": 99}),
        }
    )

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.PRO, "sale_1", "OctoCat")

    assert result.success is True
    assert result.team_id == "saas-starter-pro"
    assert result.github_username == "octocat"
    assert github.posted() == [{"role": "direct_member", "team_ids": [42], "invitee_id": 7}]
    assert github.requests[0].headers["Authorization"] == "Bearer ghp_test"


def test_unknown_username_falls_back_to_email_invitation(settings) -> None:
    github = FakeGitHub(
        {
            ("GET", "/orgs/acme/invitations"): _json(200, []),
            ("GET", "/orgs/acme/teams/saas-starter-enterprise"): _json(200, {"id": 43}),
            ("POST", "/orgs/acme/invitations"): _json(201, {"id": 100}),
        }
    )

    result = _grantor(settings, github).grant(
        "buyer@example.com", TemplatePackage.ENTERPRISE, "sale_1", "ghost-user"
    )

    assert result.success is True
    assert result.team_id == "saas-starter-enterprise"
    assert github.posted() == [{"role": "direct_member", "team_ids": [43], "email": "buyer@example.com"}]


def test_existing_membership_is_reused(settings) -> None:
    github = FakeGitHub(
        {
            ("GET", "/orgs/acme/teams/saas-starter-pro/memberships/octocat"): _json(200, {"state": "active"}),
        }
    )

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.PRO, "sale_1", "octocat")

    assert result.success is True
    assert github.posted() == []


def test_pending_invitation_matched_by_email_is_reused(settings) -> None:
    github = FakeGitHub(
        {
            ("GET", "/orgs/acme/invitations"): _json(200, [{"email": "Buyer@Example.com", "login": None}]),
        }
    )

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.PRO, "sale_1")

    assert result.success is True
    assert github.posted() == []


def test_api_error_is_reported_not_raised(settings) -> None:
    github = FakeGitHub(
        {
            ("GET", "/orgs/acme/invitations"): _json(200, []),
            ("GET", "/orgs/acme/teams/saas-starter-pro"): _json(500, {"message": "Server Error"}),
        }
    )

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.PRO, "sale_1")

    assert result.success is False
    assert result.error


def test_timeout_is_reported_not_raised(settings) -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    github = FakeGitHub({("GET", "/orgs/acme/invitations"): timeout})

    result = _grantor(settings, github).grant("buyer@example.com", TemplatePackage.PRO, "sale_1")

    assert result.success is False
    assert result.error == "timed out"
