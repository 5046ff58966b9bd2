#!/usr/bin/env python3
"""
Create a catalog session in the sessions table.

Usage examples:
    python scripts/create_session.py --admin-uid abc123 --title "Intro to React" \
        --domain webdev --date 2025-07-01 --time "10:00 AM - 11:00 AM" \
        --instructor "A. Sharma" --level Beginner --capacity 30
    python scripts/create_session.py ... --dry-run
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

# Add repository root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import boto3

from src.config.settings import Settings
from src.database.dynamodb_client import SessionRepository
from src.database.exceptions import DynamoDBException
from src.domain.session import SessionLevel


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an Engiversee catalog session.")
    parser.add_argument("--admin-uid", required=True, help="uid of the admin creating the session.")
    parser.add_argument("--title", required=True)
    parser.add_argument("--domain", required=True, help="Session type id, e.g. webdev.")
    parser.add_argument("--date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--time", required=True, help='e.g. "10:00 AM - 11:00 AM"')
    parser.add_argument("--instructor", required=True)
    parser.add_argument("--level", default=SessionLevel.BEGINNER, choices=SessionLevel.ALL)
    parser.add_argument("--capacity", type=int, required=True)
    parser.add_argument("--region", help="AWS region (default: AWS_REGION or ap-south-1).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the session that would be created without writing it.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None, dynamodb_resource=None) -> int:
    args = parse_args(argv)
    settings = Settings(region_name=args.region)

    if not settings.is_admin(args.admin_uid):
        print(f"[ERROR] {args.admin_uid} is not listed in ADMIN_UIDS", file=sys.stderr)
        return 2

    data = {
        "title": args.title,
        "domain": args.domain,
        "date": args.date,
        "time": args.time,
        "instructor": args.instructor,
        "level": args.level,
        "capacity": args.capacity,
    }

    if args.dry_run:
        print(json.dumps({"dry_run": True, "table": settings.sessions_table, "session": data}, indent=2))
        return 0

    repo = SessionRepository(
        table_name=settings.sessions_table,
        dynamodb_resource=dynamodb_resource
        or boto3.resource("dynamodb", region_name=settings.region_name),
    )
    try:
        session = repo.create_session(data)
    except DynamoDBException as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    print(f"Created session {session.id} in {settings.sessions_table}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
