#!/usr/bin/env python3
"""
AuditGate admin CLI -- provisioning helpers for operators.

Usage:
  python main.py hash-password
  python main.py issue-license 3f2b6c0e-... --start 2026-01-01 --end 2026-07-01
  python main.py issue-license 3f2b6c0e-... --save
  python main.py read-license 3f2b6c0e-... <license_key> <private_key>

Environment variables:
  DATABASE_URL             Store used by issue-license --save.
  LICENSE_DEFAULT_MONTHS   Validity length when --end is omitted (default 6).
"""

import argparse
import getpass
import sys
from datetime import datetime, timezone
from typing import Optional

from auth.license import (
    LicenseCodec,
    LicenseDecryptionError,
    LicenseResult,
    build_license_payload,
    issue_client_license,
    license_period,
)
from auth.store import AccessStore
from auth.tokens import hash_password
from core.config import get_settings


def _parse_date(value: str) -> datetime:
    """argparse type for ISO-8601 dates; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"'{value}' is not an ISO-8601 date.") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _cmd_hash_password(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("  [!] Password cannot be empty.", file=sys.stderr)
        return 1
    print(hash_password(password))
    return 0


def _cmd_issue_license(args: argparse.Namespace) -> int:
    settings = get_settings()
    codec = LicenseCodec()

    if args.save:
        store = AccessStore(settings.database_url)
        try:
            client = next((c for c in store.list_clients() if c.row_id.lower() == args.client_row_id.lower()), None)
            if client is None:
                print(f"  [!] No client with row id {args.client_row_id}.", file=sys.stderr)
                return 1
            try:
                issued = issue_client_license(
                    store,
                    codec,
                    client,
                    start_date=args.start,
                    end_date=args.end,
                    default_months=settings.license_default_months,
                )
            except ValueError as exc:
                print(f"  [!] {exc}", file=sys.stderr)
                return 1
        finally:
            store.close()
        print(f"License {issued.id} stored for {client.name} ({issued.start_date.date()} to {issued.end_date.date()}).")
        return 0

    try:
        start, end = license_period(args.start, args.end, settings.license_default_months)
        sealed = codec.encrypt(build_license_payload(args.client_row_id, start, end), args.client_row_id)
    except ValueError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    print(f"license_key: {sealed.encrypted_license}")
    print(f"private_key: {sealed.encrypted_private_key}")
    return 0


def _cmd_read_license(args: argparse.Namespace) -> int:
    codec = LicenseCodec()
    try:
        payload = codec.decrypt(
            LicenseResult(encrypted_license=args.license_key, encrypted_private_key=args.private_key),
            args.client_row_id,
        )
    except (LicenseDecryptionError, ValueError) as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    print(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auditgate",
        description="AuditGate provisioning helpers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py hash-password
  python main.py issue-license 3f2b6c0e-1d4e-4a8b-9a55-0f7f3c1e2d10
  python main.py issue-license 3f2b6c0e-1d4e-4a8b-9a55-0f7f3c1e2d10 --end 2027-01-01 --save
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    hash_cmd = subparsers.add_parser("hash-password", help="Print a bcrypt hash for a password")
    hash_cmd.add_argument(
        "--password",
        default=None,
        help="Password to hash (prompted for when omitted; prefer the prompt over shell history)",
    )
    hash_cmd.set_defaults(handler=_cmd_hash_password)

    issue_cmd = subparsers.add_parser("issue-license", help="Encrypt a license for a client")
    issue_cmd.add_argument("client_row_id", help="Client row id the license is bound to")
    issue_cmd.add_argument("--start", type=_parse_date, default=None, help="Start date (default: now)")
    issue_cmd.add_argument(
        "--end",
        type=_parse_date,
        default=None,
        help="End date (default: now + LICENSE_DEFAULT_MONTHS)",
    )
    issue_cmd.add_argument(
        "--save",
        action="store_true",
        help="Store the license for the client in DATABASE_URL instead of printing the ciphers",
    )
    issue_cmd.set_defaults(handler=_cmd_issue_license)

    read_cmd = subparsers.add_parser("read-license", help="Decrypt a license and print its payload")
    read_cmd.add_argument("client_row_id", help="Client row id the license is bound to")
    read_cmd.add_argument("license_key", help="Cipher payload (base64)")
    read_cmd.add_argument("private_key", help="Cipher key material (base64)")
    read_cmd.set_defaults(handler=_cmd_read_license)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 1
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
