#!/usr/bin/env python3
"""Print the lockoutPasswordHash value for a kiosk password."""

from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

try:
    from kiosk.lockout import hash_password
except ModuleNotFoundError:
    repo_dir = Path(__file__).resolve().parents[2]
    if str(repo_dir) not in sys.path:
        sys.path.insert(0, str(repo_dir))
    from kiosk.lockout import hash_password


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--stdin", action="store_true", help="Read the password from stdin instead of prompting")
    args = parser.parse_args()

    if args.stdin:
        password = sys.stdin.readline().rstrip("\n")
    else:
        password = getpass.getpass("Kiosk password: ")
        if getpass.getpass("Repeat password: ") != password:
            print("Passwords do not match", file=sys.stderr)
            return 1
    if not password:
        print("Password must not be empty", file=sys.stderr)
        return 1
    print(hash_password(password))
    return 0


if __name__ == "__main__":
    sys.exit(main())
