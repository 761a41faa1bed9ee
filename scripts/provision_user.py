#!/usr/bin/env python3
"""Provision a local user or role in the configured security store.

Usage:
    # Local account with a password:
    python scripts/provision_user.py user alice --password 'S3cretPassword' --role editors

    # Directory account (no local password):
    python scripts/provision_user.py user bob --display-name "Bob B."

    # Role including other roles:
    python scripts/provision_user.py role editors --include readers

Environment Variables:
    SECURITY_STORE: Store backend name (memory, postgres)
    DATABASE_URL: PostgreSQL connection string for the postgres backend
    SHARED_FS_ROOT: State directory for the memory backend
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def provision_user(args: argparse.Namespace, dry_run: bool = False) -> dict:
    # Import here to avoid loading config before env vars are set
    from gatehouse.service.runtime import get_runtime
    from gatehouse.storage.models import User

    runtime = get_runtime()
    security = runtime.security
    user = User(
        id=args.id,
        display_name=args.display_name or args.id,
        email=args.email,
        role_ids=set(args.role or []),
    )
    existing = runtime.store.get_user(args.id)
    if dry_run:
        action = "update" if existing else "create"
        print(f"[DRY RUN] Would {action} user {args.id}")
        return {"id": args.id, "status": "dry_run"}
    if existing:
        security.update_user(user, args.password)
        return {"id": args.id, "status": "updated"}
    security.create_user(user, args.password)
    return {"id": args.id, "status": "created"}


def provision_role(args: argparse.Namespace, dry_run: bool = False) -> dict:
    from gatehouse.service.runtime import get_runtime
    from gatehouse.storage.models import Role

    runtime = get_runtime()
    role = Role(id=args.id, description=args.description, role_ids=set(args.include or []))
    existing = runtime.store.get_role(args.id)
    if dry_run:
        action = "update" if existing else "create"
        print(f"[DRY RUN] Would {action} role {args.id}")
        return {"id": args.id, "status": "dry_run"}
    if existing:
        runtime.security.update_role(role)
        return {"id": args.id, "status": "updated"}
    runtime.security.create_role(role)
    return {"id": args.id, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Provision users and roles for Gatehouse",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    sub = parser.add_subparsers(dest="kind", required=True)

    user_parser = sub.add_parser("user", help="Create or update a user")
    user_parser.add_argument("id")
    user_parser.add_argument("--display-name")
    user_parser.add_argument("--email")
    user_parser.add_argument(
        "--password", help="Local password; omit for directory accounts"
    )
    user_parser.add_argument("--role", action="append", help="Role id (repeatable)")

    role_parser = sub.add_parser("role", help="Create or update a role")
    role_parser.add_argument("id")
    role_parser.add_argument("--description")
    role_parser.add_argument(
        "--include", action="append", help="Included role id (repeatable)"
    )

    args = parser.parse_args()

    from gatehouse.service.errors import ServiceError
    from gatehouse.storage.errors import ConstraintViolation, StoreUnavailableError

    try:
        if args.kind == "user":
            result = provision_user(args, args.dry_run)
        else:
            result = provision_role(args, args.dry_run)
    except (ServiceError, ConstraintViolation) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except StoreUnavailableError as e:
        print(f"Error: store unavailable: {e}")
        sys.exit(2)

    print(f"{args.kind} {result['id']}: {result['status']}")


if __name__ == "__main__":
    main()
