#!/usr/bin/env python3
import argparse
import json
import sys
from pathlib import Path

REPO_BACKEND = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_BACKEND))

from maestro.auth import create_access_token  # noqa: E402
from maestro.services.directory_store import directory_store  # noqa: E402
from maestro.services.errors import MarketplaceError  # noqa: E402
from maestro.services.notification_store import notification_store  # noqa: E402


def _create_admin(args: argparse.Namespace) -> int:
    try:
        user = directory_store.create_admin(email=args.email, phone=args.phone)
    except MarketplaceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    token, expires_at = create_access_token(user_id=user.id)
    print(json.dumps({"user_id": user.id, "access_token": token, "expires_at": expires_at}, indent=2))
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    dispatched = notification_store.dispatch_pending(limit=args.limit)
    print(json.dumps({"dispatched": dispatched, "pending": notification_store.pending_count()}, indent=2))
    return 0


def _categories(_: argparse.Namespace) -> int:
    for category in directory_store.list_categories():
        print(f"{category.id}\t{category.slug}\t{category.name}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Maintenance commands for the Maestro marketplace database.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_admin = subparsers.add_parser("create-admin", help="Create an admin user and print a bearer token.")
    create_admin.add_argument("email")
    create_admin.add_argument("--phone", default=None)
    create_admin.set_defaults(handler=_create_admin)

    dispatch = subparsers.add_parser("dispatch", help="Drain pending notification outbox intents.")
    dispatch.add_argument("--limit", type=int, default=500)
    dispatch.set_defaults(handler=_dispatch)

    categories = subparsers.add_parser("categories", help="List seeded service categories.")
    categories.set_defaults(handler=_categories)

    args = parser.parse_args()
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
