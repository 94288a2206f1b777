from __future__ import annotations

import argparse

from app.auth.security import create_access_token
from app.core.db import SessionLocal
from app.models.user import User


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Issue a bearer token for an existing user.")
    parser.add_argument("--email", required=True, help="Email of the user the token represents")
    parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Token lifetime in minutes (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email).first()
        if user is None or not user.is_active:
            raise SystemExit(f"No active user with email {args.email}")
        token = create_access_token(subject=str(user.id), role=user.role, expires_minutes=args.minutes)
    finally:
        db.close()
    print(token)


if __name__ == "__main__":
    main()
