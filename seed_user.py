#!/usr/bin/env python3
"""
Create a confirmed test user and its profile row.

Needs the service-role key, so run it from a trusted machine only:

    export SUPABASE_URL=https://<project>.supabase.co
    export SUPABASE_SERVICE_ROLE_KEY=...
    python seed_user.py --email test@example.com --password password123
"""
import argparse
import logging
import sys

from taskflow.config import ConfigError, TaskflowConfig, setup_logging
from taskflow.remote import RemoteError, RemoteService

logger = logging.getLogger("seed_user")


def seed_user(remote: RemoteService, email: str, password: str, full_name: str) -> str:
    """Create the user unless it exists. Returns the user ID."""
    existing = next(
        (u for u in remote.admin_list_users() if u.get("email") == email), None
    )
    if existing:
        logger.info(f"Test user already exists: {email} ({existing['id']})")
        return existing["id"]

    user = remote.admin_create_user(
        email=email,
        password=password,
        user_metadata={"full_name": full_name},
        email_confirm=True,
    )
    user_id = user["id"]
    logger.info(f"Test user created: {email} ({user_id})")

    remote.upsert("profiles", [{"id": user_id, "email": email, "full_name": full_name}])
    logger.info("Profile created")
    return user_id


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed a TaskFlow test user")
    parser.add_argument("--config", help="Path to taskflow.yaml")
    parser.add_argument("--email", default="test@example.com")
    parser.add_argument("--password", default="password123")
    parser.add_argument("--full-name", default="Test User")
    args = parser.parse_args(argv)

    try:
        config = TaskflowConfig.load(args.config).validate(require_service_key=True)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(config.log_level)

    remote = RemoteService(
        config.supabase_url,
        config.service_role_key,
        timeout=config.request_timeout,
    )
    try:
        seed_user(remote, args.email, args.password, args.full_name)
    except RemoteError as e:
        logger.error(f"Seed failed: {e}")
        return 1

    print(f"Email:    {args.email}")
    print(f"Password: {args.password}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
