"""Print a scrypt hash for EXPLORER_PASSWORD_HASH.

Usage::

    filevue-hash-password 'my-secure-password'
    filevue-hash-password            # prompts without echo
"""
from __future__ import annotations

import argparse
import getpass
import sys

from .credentials import hash_password


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="filevue-hash-password",
        description="Hash a password for the EXPLORER_PASSWORD_HASH environment variable.",
    )
    parser.add_argument("password", nargs="?", help="password to hash; prompted for when omitted")
    args = parser.parse_args(argv)

    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
    if not password:
        print("Password must not be empty.", file=sys.stderr)
        return 1

    print(hash_password(password))
    print("", file=sys.stderr)
    print("Set it in your environment:", file=sys.stderr)
    print('  export EXPLORER_PASSWORD_HASH="scrypt:..."', file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
