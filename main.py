#!/usr/bin/env python3
"""
Staff auth operator CLI.

Usage:
  python main.py create-admin --email ana@example.com --password 'S3nha!forte' \\
      --given-name Ana --family-name Souza
  python main.py encrypt '{"email": "ana@example.com", "senha": "S3nha!forte"}'
  python main.py decrypt U2FsdGVkX1...

Environment variables are read through core.config (SECRET_KEY,
ENCRYPTION_SECRET_KEY, DATABASE_URL, ...). encrypt/decrypt use the same
passphrase as the API, so their output can be pasted into an
{"encryptedData": ...} request body.
"""

import argparse
import json
import sys

from auth.cipher import get_cipher
from auth.errors import AuthError
from auth.models import Function, Sector
from auth.service import IdentityService
from auth.store import IdentityStore
from core.config import get_settings
from mail.dispatcher import build_dispatcher


def _create_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = IdentityStore(db_url=settings.database_url)
    service = IdentityService(store, build_dispatcher(settings), frontend_url=settings.frontend_url)
    try:
        result = service.register(
            args.given_name,
            args.family_name,
            args.email,
            args.password,
            phone=args.phone,
            sector=Sector.ADMINISTRADOR,
            functions=[Function.ADMINISTRADOR],
        )
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        store.close()
    print(f"  Administrator created: id={result.identity.id} email={result.identity.email}")
    return 0


def _encrypt(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(args.json)
    except json.JSONDecodeError as e:
        print(f"  [!] Not valid JSON: {e}")
        return 1
    print(get_cipher().encrypt_object(payload))
    return 0


def _decrypt(args: argparse.Namespace) -> int:
    try:
        payload = get_cipher().decrypt_object(args.ciphertext)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="staff-auth",
        description="Operator utilities for the staff auth service.",
    )
    sub = parser.add_subparsers(dest="command")

    admin = sub.add_parser("create-admin", help="Create an administrator identity")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", required=True, help="Must satisfy the password policy")
    admin.add_argument("--given-name", required=True)
    admin.add_argument("--family-name", required=True)
    admin.add_argument("--phone", default="")
    admin.set_defaults(handler=_create_admin)

    enc = sub.add_parser("encrypt", help="Encrypt a JSON document as an encryptedData value")
    enc.add_argument("json", metavar="JSON")
    enc.set_defaults(handler=_encrypt)

    dec = sub.add_parser("decrypt", help="Decrypt an encryptedData value back to JSON")
    dec.add_argument("ciphertext", metavar="TEXT")
    dec.set_defaults(handler=_decrypt)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
