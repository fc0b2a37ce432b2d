"""
Application settings.

All runtime configuration is read once from the environment (and an optional
`.env` file next to this module) into an immutable `Settings` object. Services
receive the object through their constructors; nothing below the API layer
reads `os.environ` directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True, slots=True)
class Settings:
    app_base_url: str = "http://localhost:3000"
    fulfillment_shared_secret: str = ""

    supabase_url: str = ""
    supabase_key: str = ""

    brevo_api_key: str = ""
    email_from_address: str = "support@example.com"
    email_from_name: str = "SaaS Starter"

    github_access_token: str = ""
    github_org: str = ""

    # Upper bound for a single email / GitHub call.
    collaborator_timeout_seconds: float = 10.0
    # A fulfilling claim older than this is treated as abandoned.
    claim_timeout_seconds: int = 900

    log_level: str = "INFO"


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings(env_file: Path | None = None) -> Settings:
    """
    Build Settings from the process environment.

    Values already present in the environment win over the `.env` file.
    """

    load_dotenv(dotenv_path=env_file or Path(__file__).parent / ".env")

    return Settings(
        app_base_url=_getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        fulfillment_shared_secret=_getenv("TEMPLATE_FULFILLMENT_SECRET"),
        supabase_url=_getenv("SUPABASE_URL"),
        supabase_key=_getenv("SUPABASE_KEY"),
        brevo_api_key=_getenv("BREVO_API_KEY"),
        email_from_address=_getenv("EMAIL_FROM_ADDRESS", "support@example.com"),
        email_from_name=_getenv("EMAIL_FROM_NAME", "SaaS Starter"),
        github_access_token=_getenv("GITHUB_ACCESS_TOKEN"),
        github_org=_getenv("GITHUB_ORG"),
        collaborator_timeout_seconds=float(_getenv("COLLABORATOR_TIMEOUT_SECONDS", "10")),
        claim_timeout_seconds=int(_getenv("FULFILLMENT_CLAIM_TIMEOUT_SECONDS", "900")),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["Settings", "load_settings", "get_settings", "configure_logging"]
