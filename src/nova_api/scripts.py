"""
Operator commands.

    nova-admin init-db
    nova-admin create-admin --name "Ops" --email ops@nova.rw --phone +250700000000 --password ...
"""

import argparse
import logging
import sys
from typing import List, Optional

from sqlalchemy import or_, select

from nova_api.db import init_db, session_scope
from nova_api.models.user import User, UserRole
from nova_api.security import hash_password

logger = logging.getLogger(__name__)


def create_admin(name: str, email: str, phone: str, password: str) -> User:
    """Insert an admin account; admins cannot be created through the public API."""
    email = email.lower().strip()
    with session_scope() as db:
        exists = db.scalar(select(User.id).where(or_(User.email == email, User.phone == phone)))
        if exists:
            raise ValueError("User already exists with this email or phone")
        user = User(
            name=name.strip(),
            email=email,
            phone=phone.strip(),
            password_hash=hash_password(password),
            role=UserRole.admin,
            is_verified=True,
        )
        db.add(user)
        db.flush()
        db.expunge(user)
    return user


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nova-admin", description="Nova Transport operator commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create missing database tables.")

    admin = sub.add_parser("create-admin", help="Create an admin account.")
    admin.add_argument("--name", required=True)
    admin.add_argument("--email", required=True)
    admin.add_argument("--phone", required=True)
    admin.add_argument("--password", required=True)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        init_db()
        logger.info("Database tables created")
        return 0

    init_db()
    try:
        user = create_admin(args.name, args.email, args.phone, args.password)
    except ValueError as e:
        logger.error("%s", e)
        return 1
    logger.info("Created admin %s (%s)", user.id, user.email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
