"""
Create a completed demo template sale for testing and demos.

The sale is ready to be fulfilled:
    python scripts/fulfill_sale.py fulfill --session cs_demo_pro --email demo@example.com --package pro
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import load_settings
from domain.sale import SaleStatus
from domain.template_package import TemplatePackage
from domain.time import utc_now
from repositories.client import create_supabase_client
from repositories.template_sale_repository import SupabaseTemplateSaleRepository

DEMO_EMAIL = "demo@example.com"

# Package price in cents
DEMO_AMOUNTS = {
    TemplatePackage.BASIC: 9900,
    TemplatePackage.PRO: 29900,
    TemplatePackage.ENTERPRISE: 99900,
}


def create_demo_sale(package: TemplatePackage, github_username=None):
    """Create the demo sale for `package` unless it already exists."""

    sales = SupabaseTemplateSaleRepository(create_supabase_client(load_settings()))
    session_id = f"cs_demo_{package.value}"

    existing = sales.get_by_session_id(session_id)
    if existing:
        print(f"Demo sale already exists: {existing.sale_id}")
        print(f"  Session: {session_id}")
        print(f"  Fulfillment: {existing.fulfillment.status.value}")
        return

    sale = sales.create_sale(
        session_id=session_id,
        email=DEMO_EMAIL,
        package=package,
        status=SaleStatus.COMPLETED,
        amount=DEMO_AMOUNTS[package],
        company_name="Demo Corporation",
        github_username=github_username,
        completed_at=utc_now(),
    )

    print(f"[SUCCESS] Demo sale created successfully!")
    print(f"  Sale ID: {sale.sale_id}")
    print(f"  Session: {session_id}")
    print(f"  Package: {package.display_name}")
    print(f"  Email: {DEMO_EMAIL}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a completed demo template sale")
    parser.add_argument("--package", choices=[p.value for p in TemplatePackage], default="pro")
    parser.add_argument("--github-username")
    args = parser.parse_args()

    create_demo_sale(TemplatePackage(args.package), args.github_username)
