"""Mint a bearer token for local development.

Tokens normally come from the identity service; this stands in for it when
exercising the API by hand.
"""

from __future__ import annotations

import argparse
import sys

from unveil_stage.core.security import create_access_token
from unveil_stage.db.session import SessionLocal
from unveil_stage.models import User


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Issue an access token for a member.")
    parser.add_argument("user_id", help="Member id to put in the token subject")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime override")
    parser.add_argument(
        "--no-check",
        action="store_true",
        help="Skip verifying that the member exists",
    )
    args = parser.parse_args(argv)

    if not args.no_check:
        with SessionLocal() as db:
            if db.get(User, args.user_id) is None:
                print(f"No member with id {args.user_id}", file=sys.stderr)
                return 1

    print(create_access_token(args.user_id, expires_minutes=args.minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
