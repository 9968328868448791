#!/usr/bin/env python3
"""
Gatehouse -- account registration, JWT session auth, and cached reference data.

Serve the API with:
  uvicorn api.main:app --reload

Usage:
  python main.py keygen
  python main.py keygen --length 48

Environment variables (see core/config.py for the full list):
  JWT_SECRET     Required. At least 32 characters. `keygen` prints one.
  DATABASE_URL   Optional SQLAlchemy URL. Defaults to auth/gatehouse.db.
  CACHE_BACKEND  redis (default) or sqlite.
"""

import argparse
import sys

from core.keys import generate_secure_key

_DB_PASSWORD_BYTES = 16


def _keygen(length: int) -> int:
    if length < 24:
        # 24 bytes is the smallest length whose base64 form reaches 32 chars.
        print("  [!] --length must be at least 24 bytes for a usable JWT secret.", file=sys.stderr)
        return 2

    jwt_secret = generate_secure_key(length)
    db_password = generate_secure_key(_DB_PASSWORD_BYTES)

    print("JWT secret:")
    print(f"  {jwt_secret}")
    print()
    print("Database password:")
    print(f"  {db_password}")
    print()
    print("Usage notes:")
    print(f"  Add to your .env file:  JWT_SECRET={jwt_secret}")
    print("  Use the database password when creating the application's DB user,")
    print("  then put it in DATABASE_URL.")
    print("  Never commit either value to version control.")
    print("  Rotating JWT_SECRET invalidates every issued token.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Gatehouse administration helpers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py keygen
  python main.py keygen --length 64
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    keygen = sub.add_parser("keygen", help="Generate a JWT secret and a database password")
    keygen.add_argument(
        "--length",
        type=int,
        default=32,
        metavar="N",
        help="Number of random bytes in the JWT secret (default: 32)",
    )

    args = parser.parse_args(argv)

    if args.command == "keygen":
        return _keygen(args.length)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
