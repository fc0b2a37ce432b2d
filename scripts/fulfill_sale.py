#!/usr/bin/env python3
"""
Manual Template Fulfillment Script

Fulfils a template sale by hand, or corrects the GitHub username on a sale and
retries the team invitation. Use it when the checkout webhook failed or a
customer supplied the wrong GitHub login.

Usage:
    python fulfill_sale.py fulfill --session cs_test_1 --email buyer@example.com --package pro
    python fulfill_sale.py override --sale-id <uuid> --github-username new-user
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Settings, configure_logging, load_settings
from domain.errors import FulfillmentError
from domain.template_package import TemplatePackage
from repositories.client import create_supabase_client
from repositories.template_customer_repository import SupabaseTemplateCustomerRepository
from repositories.template_sale_repository import SupabaseTemplateSaleRepository
from services.delivery_email_service import BrevoDeliveryNotifier
from services.fulfillment_service import FulfillmentRequest, TemplateFulfillmentService
from services.github_access_service import GitHubAccessGrantor
from services.github_override_service import GithubOverrideRequest, GithubOverrideService


def run_fulfill(args: argparse.Namespace, settings: Settings) -> int:
    client = create_supabase_client(settings)
    service = TemplateFulfillmentService(
        settings=settings,
        sales=SupabaseTemplateSaleRepository(client),
        customers=SupabaseTemplateCustomerRepository(client),
        notifier=BrevoDeliveryNotifier(settings),
        grantor=GitHubAccessGrantor(settings),
    )

    result = service.fulfill_template_sale(
        FulfillmentRequest(
            session_id=args.session,
            customer_email=args.email,
            package=TemplatePackage(args.package),
            customer_name=args.name,
            company_name=args.company,
            github_username=args.github_username,
        )
    )

    print("=" * 60)
    print("FULFILLMENT SUMMARY")
    print("=" * 60)
    print(f"License key:     {result.license_key}")
    print(f"Download URL:    {result.download_url}")
    print(f"Support tier:    {result.support_tier}")
    print(f"Access expires:  {result.access_expires_at.isoformat() if result.access_expires_at else 'never'}")
    print(f"Email sent:      {result.email_sent}")
    print(f"GitHub access:   {result.github_access_granted} ({result.github_team_id or '-'})")
    print("=" * 60)
    return 0


def run_override(args: argparse.Namespace, settings: Settings) -> int:
    client = create_supabase_client(settings)
    service = GithubOverrideService(
        sales=SupabaseTemplateSaleRepository(client),
        customers=SupabaseTemplateCustomerRepository(client),
        grantor=GitHubAccessGrantor(settings),
        claim_timeout=timedelta(seconds=settings.claim_timeout_seconds),
    )

    result = service.override_github_username(
        GithubOverrideRequest(
            github_username=args.github_username,
            sale_id=args.sale_id,
            customer_email=args.email,
            retry=not args.no_retry,
            performed_by=args.operator,
        )
    )

    print(f"Sale:            {result.sale_id}")
    print(f"Customer email:  {result.customer_email}")
    print(f"GitHub username: {result.github_username}")
    print(f"Retried:         {result.retried}")
    print(result.message)
    return 0 if not result.retried or (result.invitation and result.invitation.success) else 1


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Manually fulfil template sales or fix GitHub usernames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fulfil a pro sale whose webhook failed
  python fulfill_sale.py fulfill --session cs_test_1 --email buyer@example.com --package pro

  # Fix a GitHub username and re-send the invitation
  python fulfill_sale.py override --sale-id 123e4567-e89b-12d3-a456-426614174000 --github-username new-user

  # Fix the username only
  python fulfill_sale.py override --email buyer@example.com --github-username new-user --no-retry
        """
    )
    parser.add_argument("--env-file", type=Path, help="Path to a .env file")
    subcommands = parser.add_subparsers(dest="command", required=True)

    fulfill = subcommands.add_parser("fulfill", help="Fulfil a completed sale")
    fulfill.add_argument("--session", "-s", required=True, help="Checkout session ID")
    fulfill.add_argument("--email", "-e", required=True, help="Customer email")
    fulfill.add_argument(
        "--package",
        "-p",
        required=True,
        choices=[package.value for package in TemplatePackage],
        help="Purchased package tier",
    )
    fulfill.add_argument("--name", help="Customer name for the email greeting")
    fulfill.add_argument("--company", help="Customer company name")
    fulfill.add_argument("--github-username", help="GitHub login for repository access")

    override = subcommands.add_parser("override", help="Correct a sale's GitHub username")
    override.add_argument("--sale-id", help="Sale ID (preferred)")
    override.add_argument("--email", help="Customer email (most recent sale is used)")
    override.add_argument("--github-username", required=True, help="Corrected GitHub login")
    override.add_argument("--no-retry", action="store_true", help="Do not re-send the GitHub invitation")
    override.add_argument("--operator", default="cli", help="Recorded as the override author")

    args = parser.parse_args()

    settings = load_settings(args.env_file)
    configure_logging(settings)

    try:
        if args.command == "fulfill":
            return run_fulfill(args, settings)
        return run_override(args, settings)

    except FulfillmentError as e:
        print(f"\nERROR [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
