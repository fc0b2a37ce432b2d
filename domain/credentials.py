"""
Domain: Access credentials issued on fulfillment.

Produces the license key and download token handed to a template customer.
Everything here is side-effect free; randomness comes from `secrets`.

License key format:
    {PREFIX}-{SEGMENT}-{SEGMENT}-{CHECKSUM}

    PREFIX   first three letters of the upper-cased package tier (PRO, BAS, ENT)
    SEGMENT  8 upper-case hex characters from a CSPRNG
    CHECKSUM 8 upper-case hex characters of a SHA-256 over prefix, wall-clock
             millis and a fresh UUID

The checksum is not derived from the segments, so it cannot be used to detect
tampering. It only makes keys harder to mistype into something else valid.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from .template_package import TemplatePackage
from .time import require_utc_timestamp, to_iso_utc

DOWNLOAD_PATH = "/template-download"


@dataclass(frozen=True, slots=True)
class AccessCredentials:
    license_key: str
    download_token: str
    download_url: str
    expires_at: Optional[datetime]

    def __post_init__(self) -> None:
        if self.expires_at is not None:
            require_utc_timestamp("expires_at", self.expires_at)

    def to_metadata(self) -> Dict[str, Any]:
        """JSON-safe representation (expiration as ISO string or null)."""

        return {
            "licenseKey": self.license_key,
            "downloadToken": self.download_token,
            "downloadUrl": self.download_url,
            "expiresAt": to_iso_utc(self.expires_at, name="expires_at") if self.expires_at else None,
        }


def _segment() -> str:
    return secrets.token_hex(4).upper()


def generate_license_key(package: TemplatePackage) -> str:
    prefix = package.value.upper()[:3]
    seed = f"{prefix}-{time.time_ns() // 1_000_000}-{uuid.uuid4()}"
    checksum = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:8].upper()
    return f"{prefix}-{_segment()}-{_segment()}-{checksum}"


def generate_download_token() -> str:
    """32 random bytes, URL-safe base64 without '=' padding."""

    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")


def build_download_url(base_url: str, download_token: str) -> str:
    return f"{base_url.rstrip('/')}{DOWNLOAD_PATH}?{urlencode({'token': download_token})}"


def generate_access_credentials(
    package: TemplatePackage,
    base_url: str,
    now: datetime,
) -> AccessCredentials:
    """
    Issue a fresh set of credentials for a purchase of `package`.

    Args:
        package: Purchased tier (drives key prefix and expiration)
        base_url: Public base URL the download link points at
        now: UTC time of issue

    Returns:
        AccessCredentials with license key, token, link and expiration
    """

    token = generate_download_token()
    return AccessCredentials(
        license_key=generate_license_key(package),
        download_token=token,
        download_url=build_download_url(base_url, token),
        expires_at=package.access_expiration(now),
    )
