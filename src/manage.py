"""
Admin commands.

    python -m src.manage init-db
    python -m src.manage issue-session --owner <owner-id> [--ttl-hours 24]
"""
import argparse
import logging
from datetime import timedelta
from typing import List, Optional

from sqlmodel import Session

from src.api.security import issue_dashboard_session
from src.config import settings
from src.db import create_db_and_tables, engine

logger = logging.getLogger("AnalyticsAPI.Manage")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m src.manage", description="Analytics API admin commands")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create tables (and the hypertable on TimescaleDB)")

    issue = commands.add_parser("issue-session", help="Issue a first-party dashboard session token")
    issue.add_argument("--owner", required=True, help="Owner the session signs in as")
    issue.add_argument(
        "--ttl-hours",
        type=int,
        default=settings.DASHBOARD_SESSION_TTL_HOURS,
        help="Session lifetime in hours",
    )
    return parser


def main(argv: Optional[List[str]] = None, db_engine=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    db_engine = db_engine or engine

    if args.command == "init-db":
        create_db_and_tables()
        return 0

    with Session(db_engine) as session:
        token = issue_dashboard_session(session, args.owner, ttl=timedelta(hours=args.ttl_hours))
    print(f"{settings.SESSION_COOKIE_NAME}={token}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
