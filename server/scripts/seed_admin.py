"""
CLI helper to create an admin profile and their first store.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storefront.config import get_settings
from storefront.db import PostgresDbClient
from storefront.errors import StorefrontError
from storefront.types import ADMIN_ROLES, Role

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create an admin and their first store")
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument(
        "--store-name",
        required=True,
        help="Name of the admin's first store",
    )
    parser.add_argument(
        "--role",
        choices=[role.value for role in ADMIN_ROLES],
        default=Role.ADMIN.value,
        help="Role to grant",
    )
    parser.add_argument(
        "--user-id",
        default=None,
        help="Reuse the id issued by the auth service",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if len(args.store_name.strip()) < 2:
        parser.error("Store name must be at least 2 characters.")

    settings = get_settings()
    if not settings.database_url:
        parser.error("DATABASE_URL is required")

    db = PostgresDbClient(settings.database_url)
    try:
        profile = db.create_profile(args.email, Role(args.role), profile_id=args.user_id)
    except StorefrontError as exc:
        logger.error("Could not create profile: %s", exc)
        return 1
    try:
        store = db.create_store(args.store_name.strip(), profile.id)
    except StorefrontError as exc:
        # The admin exists without a store and can create one later.
        logger.error("Admin was created, but the first store could not be: %s", exc)
        return 1

    logger.info("Created %s %s (%s) with store %s", profile.role.value, profile.email, profile.id, store.id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
