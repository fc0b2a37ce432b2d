"""
Supabase client initialization.

This module contains *only* the database connection setup. Repositories take a
client in their constructor; `get_supabase_client()` builds the shared one
from Settings the first time it is needed.

Settings required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, List, Mapping

from postgrest.exceptions import APIError

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from config import Settings, get_settings


def create_supabase_client(settings: Settings) -> Client:
    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    return create_supabase_client(get_settings())


def execute_query(query: Any, action: str) -> List[Mapping[str, Any]]:
    """
    Run a query builder and return its rows.

    Raises RuntimeError("Failed to {action}: ...") on any PostgREST error.
    """

    try:
        response = query.execute()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e}") from e

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")

    return getattr(response, "data", None) or []


__all__ = ["create_supabase_client", "get_supabase_client", "execute_query"]
