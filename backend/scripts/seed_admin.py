#!/usr/bin/env python
"""Seed the first organization and its admin user.

Self-registered users start as pending and need an active admin to be
approved, so every new deployment needs one admin created out of band.
Run once during initial setup:

    python backend/scripts/seed_admin.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    PASSWORD_PEPPER: Password hashing pepper (required)
    ORG_SLUG: Organization slug (default: contractflow)
    ORG_NAME: Organization name, used when the org does not exist yet
    ADMIN_USERNAME: Username for the admin (default: admin)
    ADMIN_EMAIL: Email for the admin (optional)
    ADMIN_PASSWORD: Password for the admin (required)
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from contractflow.auth.password import hash_password, validate_password_length
from contractflow.auth.roles import UserRole, UserStatus
from contractflow.database import get_db_session
from contractflow.models.org import Org
from contractflow.models.user import User


def main():
    """Create the organization if needed, then the admin user."""
    org_slug = os.getenv("ORG_SLUG", "contractflow")
    org_name = os.getenv("ORG_NAME", "ContractFlow")
    username = os.getenv("ADMIN_USERNAME", "admin")
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")

    if not password:
        print("ERROR: ADMIN_PASSWORD environment variable is required")
        sys.exit(1)

    is_valid, error_msg = validate_password_length(password)
    if not is_valid:
        print(f"ERROR: {error_msg}")
        sys.exit(1)

    with get_db_session() as session:
        org = session.query(Org).filter(Org.slug == org_slug).first()
        if org is None:
            org = Org(slug=org_slug, name=org_name, settings_json={})
            session.add(org)
            session.flush()
            print(f"Created organization {org.slug} ({org.id})")

        existing = session.query(User).filter(User.org_id == org.id, User.username == username).first()
        if existing:
            print(f"ERROR: User {username} already exists in organization {org.slug}")
            sys.exit(1)

        admin = User(
            org_id=org.id,
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=UserRole.ADMIN.value,
            status=UserStatus.ACTIVE.value,
        )
        session.add(admin)
        session.flush()

        print("SUCCESS: Admin user created")
        print(f"  ID:       {admin.id}")
        print(f"  Org:      {org.slug}")
        print(f"  Username: {admin.username}")


if __name__ == "__main__":
    main()
