#!/usr/bin/env python
from __future__ import annotations

import argparse
import getpass
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from inventory.db import SessionLocal
from inventory.models import UserRole
from inventory.schemas import UserCreateRequest
from inventory.storage import ConflictError, DatabaseStorage


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the first administrator account.")
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    parser.add_argument("--password", help="Prompted for when omitted.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    password = args.password or getpass.getpass("Password: ")
    payload = UserCreateRequest(
        username=args.username,
        email=args.email,
        password=password,
        first_name=args.first_name,
        last_name=args.last_name,
        role=UserRole.ADMIN,
    )

    with SessionLocal() as db:
        storage = DatabaseStorage(db)
        try:
            user = storage.create_user(payload)
        except ConflictError as exc:
            print(json.dumps({"ok": False, "error": f"{exc.field} already exists"}))
            return 1

    print(json.dumps({"ok": True, "user_id": user.id, "username": user.username}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
