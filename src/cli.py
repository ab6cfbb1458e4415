"""Operator commands for the configured store.

Usage:
    spendwise-keys issue "CI key" --scope read
    spendwise-keys sweep --retention-hours 48
"""

import argparse
import asyncio
from datetime import timedelta

from src.keys.issue import issue_key
from src.keys.models import parse_timestamp
from src.logging.audit import setup_logging
from src.security.windows import sweep
from src.store.factory import get_store


async def _issue(args: argparse.Namespace) -> int:
    issued, key = await issue_key(
        get_store(),
        name=args.name,
        scopes=args.scope,
        rate_limit_per_minute=args.per_minute,
        rate_limit_per_day=args.per_day,
        expires_at=parse_timestamp(args.expires_at),
    )

    print("=" * 60)
    print("API KEY GENERATED")
    print("=" * 60)
    print(f"Key ID:     {key.id}")
    print(f"Name:       {key.name}")
    print(f"Scopes:     {', '.join(key.scopes)}")
    print(f"Rate limit: {key.rate_limit_per_minute}/min, {key.rate_limit_per_day}/day")
    print()
    print("Save this key now, it will not be shown again:")
    print(f"  {issued.secret}")
    return 0


async def _sweep(args: argparse.Namespace) -> int:
    retention = timedelta(hours=args.retention_hours) if args.retention_hours else None
    deleted = await sweep(get_store(), retention=retention)
    print(f"Deleted {deleted} rate limit window(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spendwise-keys", description="Manage API keys and rate limit windows")
    commands = parser.add_subparsers(dest="command", required=True)

    issue = commands.add_parser("issue", help="Issue a new API key")
    issue.add_argument("name", help="Display name for the key")
    issue.add_argument("--scope", action="append", help="Scope to grant (repeatable, default: read and write)")
    issue.add_argument("--per-minute", type=int, default=None, help="Requests per minute")
    issue.add_argument("--per-day", type=int, default=None, help="Requests per day")
    issue.add_argument("--expires-at", default=None, help="ISO-8601 expiry timestamp")
    issue.set_defaults(handler=_issue)

    sweep_cmd = commands.add_parser("sweep", help="Delete stale rate limit windows")
    sweep_cmd.add_argument("--retention-hours", type=int, default=None, help="Override WINDOW_RETENTION_HOURS")
    sweep_cmd.set_defaults(handler=_sweep)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    raise SystemExit(main())
