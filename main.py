#!/usr/bin/env python3
"""
Proposal Tracker command-line client.

Talks to a running server over the JSON API. The session token is kept in
~/.proptrack/session.db between runs, so log in once and the other commands
reuse it until it expires.

Usage:
  python main.py login you@example.com
  python main.py whoami
  python main.py export --format csv --start-date 2024-01-01 > submissions.csv
  python main.py export --format json --fields date,status,price
  python main.py logout
  python main.py check-db

Environment variables:
  PROPTRACK_URL   Server root URL (default http://localhost:8000).
"""

import argparse
import getpass
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import requests

from client.session import AuthError, TrackerClient
from client.store import MemoryTokenStore, PersistentTokenStore, SessionCache, StatusCookieStore

_DEFAULT_URL = "http://localhost:8000"
_SESSION_DB = Path.home() / ".proptrack" / "session.db"


def build_client(base_url: str, session_db: Path = _SESSION_DB) -> TrackerClient:
    """Create a client whose token survives between CLI invocations."""
    http = requests.Session()
    cache = SessionCache([MemoryTokenStore(), PersistentTokenStore(session_db), StatusCookieStore(http.cookies)])
    return TrackerClient(base_url, cache=cache, http=http)


def _cmd_login(client: TrackerClient, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    try:
        user = client.login(args.email, password)
    except AuthError as e:
        print(f"  [!] {e}", file=sys.stderr)
        return 1
    print(f"Logged in as {user['email']} ({user['role']}).")
    return 0


def _cmd_logout(client: TrackerClient, args: argparse.Namespace) -> int:
    client.logout()
    print("Logged out.")
    return 0


def _cmd_whoami(client: TrackerClient, args: argparse.Namespace) -> int:
    user = client.check_auth()
    if user is None:
        print("Not logged in. Run: python main.py login <email>")
        return 1
    print(f"{user['email']} ({user['role']}, id {user['user_id']})")
    return 0


def _cmd_export(client: TrackerClient, args: argparse.Namespace) -> int:
    fields = [f.strip() for f in args.fields.split(",")] if args.fields else None
    try:
        content = client.export(
            fmt=args.format,
            fields=fields,
            start_date=args.start_date,
            end_date=args.end_date,
            status=args.status,
            search=args.search,
        )
    except AuthError as e:
        print(f"  [!] {e}", file=sys.stderr)
        return 1
    if args.output:
        Path(args.output).write_bytes(content)
        print(f"Wrote {len(content)} bytes to {args.output}.")
    elif args.format == "json":
        print(json.dumps(json.loads(content), indent=2))
    else:
        sys.stdout.write(content.decode("utf-8"))
    return 0


def _cmd_check_db(args: argparse.Namespace) -> int:
    """Connect to the server database directly. Run this on the server host."""
    from core.config import get_settings
    from core.db import build_engine, ping

    url = args.database_url or get_settings().database_url
    engine = build_engine(url)
    try:
        ok = ping(engine)
    finally:
        engine.dispose()
    print("Database connection OK." if ok else "Database connection FAILED.")
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proptrack",
        description="Command-line client for the Proposal Tracker API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py login you@example.com
  python main.py export --format csv > submissions.csv
  PROPTRACK_URL=https://tracker.example.com python main.py whoami
        """,
    )
    parser.add_argument(
        "--url",
        default=None,
        help=f"Server root URL (default: $PROPTRACK_URL or {_DEFAULT_URL})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_login = sub.add_parser("login", help="Log in and remember the session")
    p_login.add_argument("email")
    p_login.add_argument("--password", help="Password (prompted when omitted)")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("whoami", help="Show the logged-in account")

    p_export = sub.add_parser("export", help="Download submissions as CSV or JSON")
    p_export.add_argument("--format", choices=["csv", "json"], default="csv")
    p_export.add_argument("--fields", metavar="LIST", help="Comma-separated columns, e.g. date,status,price")
    p_export.add_argument("--start-date", metavar="YYYY-MM-DD")
    p_export.add_argument("--end-date", metavar="YYYY-MM-DD")
    p_export.add_argument(
        "--status",
        choices=["submitted", "viewed", "interviewed", "won", "declined"],
    )
    p_export.add_argument("--search", metavar="TEXT")
    p_export.add_argument("-o", "--output", metavar="PATH", help="Write to a file instead of stdout")

    p_db = sub.add_parser("check-db", help="Verify the server database is reachable")
    p_db.add_argument("--database-url", help="Override DATABASE_URL")
    return parser


_COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "whoami": _cmd_whoami,
    "export": _cmd_export,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "check-db":
        return _cmd_check_db(args)

    base_url = args.url or os.environ.get("PROPTRACK_URL") or _DEFAULT_URL
    client = build_client(base_url)
    try:
        return _COMMANDS[args.command](client, args)
    except requests.RequestException as e:
        print(f"  [!] Request to {base_url} failed: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
