"""CLI to run a calendar and/or Gmail sync for one user, e.g. from cron.

Usage:
  python -m backend.app.scripts.sync_user --user-id 1 --calendar --gmail --max-results 50
"""
import argparse
import sys

from dotenv import load_dotenv

from ..core.config import GoogleConfig
from ..core.errors import SyncError
from ..core.logging import init_logging
from ..db.database import SessionLocal, init_db
from ..services.calendar_sync import CalendarReconciler
from ..services.email_ingest import EmailIngestor


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sync one user's calendar events and emails with Google")
    parser.add_argument("--user-id", type=int, required=True)
    parser.add_argument("--calendar", action="store_true", help="Push unsynced calendar events")
    parser.add_argument("--gmail", action="store_true", help="Fetch and store new Gmail messages")
    parser.add_argument("--max-results", type=int, default=50)
    parser.add_argument("--query", default="", help="Gmail search query")
    args = parser.parse_args(argv)
    if not (args.calendar or args.gmail):
        args.calendar = args.gmail = True

    load_dotenv(dotenv_path="backend/.env", override=False)
    init_logging()
    init_db()
    config = GoogleConfig.from_env()
    session = SessionLocal()
    status = 0
    try:
        if args.calendar:
            try:
                result = CalendarReconciler(session, config).sync_user_calendar(args.user_id)
                print(f"calendar: synced={result.synced} failed={result.failed} total={result.total}")
            except SyncError as e:
                print(f"calendar: {type(e).__name__}: {e}", file=sys.stderr)
                status = 1
        if args.gmail:
            try:
                result = EmailIngestor(session, config).fetch_and_store_emails(args.user_id, max_results=args.max_results, query=args.query)
                print(f"gmail: fetched={result.fetched} stored={result.stored} failed={result.failed}")
            except SyncError as e:
                print(f"gmail: {type(e).__name__}: {e}", file=sys.stderr)
                status = 1
    finally:
        session.close()
    return status


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
