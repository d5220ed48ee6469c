"""Provision a user account (there is no self-registration endpoint).

Usage:
    python database/scripts/create_user.py admin@example.com --first Dana --last Levi --role admin
    python database/scripts/create_user.py learner@example.com --first Noa --last Cohen --password secret
    python database/scripts/create_user.py learner@example.com --first Noa --last Cohen --dry-run
"""

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from xfactor_api.core.database import AsyncSessionLocal
from xfactor_api.models.user import ROLES, User
from xfactor_api.services.auth_service import hash_password


async def create_user(args: argparse.Namespace, password: str | None) -> int:
    email = args.email.lower()
    async with AsyncSessionLocal() as db:
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none():
            print(f"  [WARN] {email} already exists")
            return 1

        if args.dry_run:
            print(f"[DRY RUN] would create {args.role} {email} ({args.first} {args.last})")
            return 0

        user = User(
            email=email,
            first_name=args.first,
            last_name=args.last,
            role=args.role,
            company=args.company,
            team=args.team,
            password_hash=hash_password(password) if password else None,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            print(f"  [ERROR] {e.orig}")
            return 1
        print(f"  [OK] created {args.role} {email} id={user.id}")
        return 0


def main():
    parser = argparse.ArgumentParser(description="Create a user account")
    parser.add_argument("email")
    parser.add_argument("--first", required=True, help="first name")
    parser.add_argument("--last", required=True, help="last name")
    parser.add_argument("--role", choices=ROLES, default="learner")
    parser.add_argument("--company")
    parser.add_argument("--team")
    parser.add_argument("--password", help="omit for one-time-code-only login; '-' prompts")
    parser.add_argument("--dry-run", action="store_true", help="check only, write nothing")
    args = parser.parse_args()

    password = args.password
    if password == "-":
        password = getpass.getpass("Password: ")

    sys.exit(asyncio.run(create_user(args, password)))


if __name__ == "__main__":
    main()
