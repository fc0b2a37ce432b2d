"""
Domain: GitHub username handling (pure).

GitHub logins are case-insensitive; we store them lower-cased so that lookups,
invitations and overrides all agree on one spelling.
"""

from __future__ import annotations

import re
from typing import Optional

# 1-39 chars, alphanumeric or single hyphens, no leading/trailing hyphen.
GITHUB_USERNAME_PATTERN = re.compile(r"^[a-z\d](?:[a-z\d]|-(?=[a-z\d])){0,38}$", re.IGNORECASE)


def normalize_github_username(username: Optional[str]) -> Optional[str]:
    """
    Normalize a user-supplied GitHub username.

    Trims whitespace, drops a leading '@' and lower-cases the result.
    Returns None when nothing usable remains or the result is not a valid
    GitHub login.

    Example:
        normalize_github_username("  @Octo-Cat ")  # "octo-cat"
        normalize_github_username("@")              # None
        normalize_github_username("not valid!")     # None
    """

    if not username:
        return None
    trimmed = username.strip()
    if trimmed.startswith("@"):
        trimmed = trimmed[1:]
    normalized = trimmed.lower()
    if not is_valid_github_username(normalized):
        return None
    return normalized


def is_valid_github_username(username: Optional[str]) -> bool:
    if not username:
        return False
    return GITHUB_USERNAME_PATTERN.match(username) is not None
