"""
Template delivery email (Delivery Notifier).

Sends the tier-specific "your template is ready" email carrying the license
key and download link. Delivery goes through Brevo's transactional email API.

Failure policy:
- send() never raises for delivery problems (missing API key, API errors,
  timeouts); it returns DeliveryResult(success=False, error=...) and logs.
- The caller records the flag and carries on; a failed email can be re-sent
  by an operator.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import sib_api_v3_sdk
from sib_api_v3_sdk.rest import ApiException

from config import Settings
from domain.credentials import AccessCredentials
from domain.template_package import TemplatePackage

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DeliveryNotifier(Protocol):
    def send(
        self,
        customer_email: str,
        package: TemplatePackage,
        credentials: AccessCredentials,
        customer_name: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> DeliveryResult:
        ...


@dataclass(frozen=True, slots=True)
class DeliveryEmailContent:
    subject: str
    html: str
    text: str


_PACKAGE_FEATURES: Dict[TemplatePackage, List[str]] = {
    TemplatePackage.BASIC: [
        "Complete Next.js 14 SaaS template",
        "Authentication & authorization",
        "Multi-tenant architecture",
        "Basic billing integration",
        "Documentation & examples",
        "Email support",
    ],
    TemplatePackage.PRO: [
        "Everything in Basic",
        "Advanced billing features",
        "White-label customization",
        "Video tutorials",
        "Priority support",
        "1-hour consultation call",
        "Private GitHub repository access",
    ],
    TemplatePackage.ENTERPRISE: [
        "Everything in Pro",
        "Custom deployment setup",
        "Team training session",
        "Extended support (6 months)",
        "Custom integrations",
        "Source code modifications",
        "Dedicated account manager",
    ],
}

_EXTRA_NEXT_STEPS: Dict[TemplatePackage, List[str]] = {
    TemplatePackage.BASIC: [],
    TemplatePackage.PRO: [
        "Access your private GitHub repository",
        "Watch the video tutorial series",
        "Schedule your consultation call",
    ],
    TemplatePackage.ENTERPRISE: [
        "Access your private GitHub repository",
        "Review custom deployment documentation",
        "Contact your account manager for team training",
        "Set up your dedicated support channel",
    ],
}

_SUPPORT_LINES: Dict[TemplatePackage, List[str]] = {
    TemplatePackage.BASIC: [
        "Email support (48-hour response)",
        "Community Discord access",
    ],
    TemplatePackage.PRO: [
        "Priority email support (24-hour response)",
        "1-hour consultation call included",
        "Video tutorial library",
    ],
    TemplatePackage.ENTERPRISE: [
        "24/7 phone + email support",
        "Dedicated account manager",
        "Team training session",
        "Custom integration consultation",
    ],
}

_BASE_NEXT_STEPS = [
    "Download the template using the link above",
    "Follow the Quick Start guide in the documentation",
    "Set up your development environment",
    "Deploy your first SaaS application",
]


def render_delivery_email(
    customer_email: str,
    package: TemplatePackage,
    credentials: AccessCredentials,
    base_url: str,
    customer_name: Optional[str] = None,
    company_name: Optional[str] = None,
) -> DeliveryEmailContent:
    """
    Build subject, HTML and plain-text bodies for a delivery email.

    Example:
        content = render_delivery_email("a@b.com", TemplatePackage.PRO, creds, "https://app")
        content.subject  # "Your Pro Package is ready for download!"
    """

    base_url = base_url.rstrip("/")
    expiration_text = (
        credentials.expires_at.strftime("%B %d, %Y") if credentials.expires_at else "Does not expire"
    )
    if customer_name:
        greeting = f"Hi {customer_name},"
    elif company_name:
        greeting = "Hi there,"
    else:
        greeting = "Hello!"

    name = package.display_name
    subject = f"Your {name} is ready for download!"
    features = _PACKAGE_FEATURES[package]
    next_steps = _BASE_NEXT_STEPS + _EXTRA_NEXT_STEPS[package]
    support = _SUPPORT_LINES[package]

    resources = [
        ("Documentation", f"{base_url}/docs"),
        ("Quick Start", f"{base_url}/quickstart"),
    ]
    if package is not TemplatePackage.BASIC:
        resources.append(("Premium Portal", f"{base_url}/premium-portal"))

    esc = html.escape
    html_body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{esc(subject)}</title></head>
<body>
  <h1>Welcome to SaaS Starter {esc(name)}!</h1>
  <p>{esc(greeting)}</p>
  <p>Thank you for purchasing the <strong>{esc(name)}</strong>! Your complete SaaS starter template is now ready for download.</p>
  <h3>Your Access Credentials</h3>
  <p><strong>License Key:</strong> <code>{esc(credentials.license_key)}</code></p>
  <p><strong>Download Link:</strong> <a href="{esc(credentials.download_url)}">Download Template</a></p>
  <p><strong>Access Expires:</strong> {esc(expiration_text)}</p>
  <p><strong>Important:</strong> Save your license key and download the template within 7 days.</p>
  <h3>What's Included in Your Package</h3>
  <ul>{"".join(f"<li>{esc(item)}</li>" for item in features)}</ul>
  <h3>Next Steps</h3>
  <ol>{"".join(f"<li>{esc(step)}</li>" for step in next_steps)}</ol>
  <h3>Resources</h3>
  <p>{" | ".join(f'<a href="{esc(url)}">{esc(label)}</a>' for label, url in resources)}</p>
  <h3>Need Help?</h3>
  <ul>{"".join(f"<li>{esc(line)}</li>" for line in support)}</ul>
  <p>This email was sent to {esc(customer_email)} regarding your template purchase.</p>
</body>
</html>
"""

    text_lines = [
        greeting,
        "",
        f"Thank you for purchasing the {name}! Your complete SaaS starter template is now ready for download.",
        "",
        "Your Access Credentials:",
        f"License Key: {credentials.license_key}",
        f"Download URL: {credentials.download_url}",
        f"Access Expires: {expiration_text}",
        "",
        "Important: Save your license key and download the template within 7 days.",
        "",
        "What's Included:",
        *[f"- {item}" for item in features],
        "",
        "Next Steps:",
        *[f"{index}. {step}" for index, step in enumerate(next_steps, start=1)],
        "",
        "Resources:",
        *[f"- {label}: {url}" for label, url in resources],
        "",
        "Support:",
        *[f"- {line}" for line in support],
    ]

    return DeliveryEmailContent(subject=subject, html=html_body, text="\n".join(text_lines))


class BrevoDeliveryNotifier:
    """DeliveryNotifier backed by Brevo (sib_api_v3_sdk)."""

    def __init__(self, settings: Settings, transactional_emails_api: Any = None) -> None:
        self._settings = settings
        self._api = transactional_emails_api

        if self._api is None:
            if not settings.brevo_api_key:
                logger.warning("BREVO_API_KEY not configured - template delivery emails will be skipped")
                return
            configuration = sib_api_v3_sdk.Configuration()
            configuration.api_key["api-key"] = settings.brevo_api_key
            self._api = sib_api_v3_sdk.TransactionalEmailsApi(sib_api_v3_sdk.ApiClient(configuration))

    def send(
        self,
        customer_email: str,
        package: TemplatePackage,
        credentials: AccessCredentials,
        customer_name: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> DeliveryResult:
        if self._api is None:
            return DeliveryResult(success=False, error="Email delivery is not configured")

        content = render_delivery_email(
            customer_email=customer_email,
            package=package,
            credentials=credentials,
            base_url=self._settings.app_base_url,
            customer_name=customer_name,
            company_name=company_name,
        )

        email = sib_api_v3_sdk.SendSmtpEmail(
            to=[sib_api_v3_sdk.SendSmtpEmailTo(email=customer_email, name=customer_name or None)],
            sender=sib_api_v3_sdk.SendSmtpEmailSender(
                email=self._settings.email_from_address,
                name=self._settings.email_from_name,
            ),
            subject=content.subject,
            html_content=content.html,
            text_content=content.text,
            tags=["template-delivery", package.value],
        )

        try:
            response = self._api.send_transac_email(
                email,
                _request_timeout=self._settings.collaborator_timeout_seconds,
            )
        except ApiException as e:
            logger.error(
                f"Brevo rejected template delivery email to {customer_email}: {e}",
                extra={"package": package.value, "status": getattr(e, "status", None)},
            )
            return DeliveryResult(success=False, error=str(e))
        except Exception as e:
            # Transport errors and timeouts from urllib3 land here.
            logger.error(
                f"Failed to send template delivery email to {customer_email}: {e}",
                extra={"package": package.value},
            )
            return DeliveryResult(success=False, error=str(e))

        message_id = getattr(response, "message_id", None)
        logger.info(
            f"Template delivery email sent to {customer_email} - Message ID: {message_id}",
            extra={"package": package.value},
        )
        return DeliveryResult(success=True, message_id=message_id)


__all__ = [
    "DeliveryResult",
    "DeliveryNotifier",
    "DeliveryEmailContent",
    "render_delivery_email",
    "BrevoDeliveryNotifier",
]
