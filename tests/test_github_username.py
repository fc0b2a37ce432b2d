"""
Tests for `domain/github_username.py`.
"""

from __future__ import annotations

import pytest

from domain.github_username import is_valid_github_username, normalize_github_username


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("New-User", "new-user"),
        ("  @Octo-Cat ", "octo-cat"),
        ("a", "a"),
        ("a" * 39, "a" * 39),
    ],
)
def test_normalize_valid_usernames(raw: str, expected: str) -> None:
    assert normalize_github_username(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "@", "-abc", "abc-", "a--b", "a" * 40, "not valid", "under_score"],
)
def test_normalize_invalid_usernames_returns_none(raw) -> None:
    """Verify invalid input yields None instead of raising."""

    assert normalize_github_username(raw) is None


def test_validation_is_case_insensitive() -> None:
    assert is_valid_github_username("New-User")
    assert not is_valid_github_username("@new-user")
