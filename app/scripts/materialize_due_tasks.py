# FILE: app/scripts/materialize_due_tasks.py
"""
Periodic tick for the medication task stream.

    python -m app.scripts.materialize_due_tasks
    python -m app.scripts.materialize_due_tasks --admission-id <id> --horizon-hours 24
    python -m app.scripts.materialize_due_tasks --db-uri sqlite:///./ipd.db

Run from cron / a systemd timer; re-running is harmless.
"""
from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from app.core.log_config import setup_logging
from app.db.session import SessionLocal, make_engine, make_session_factory
from app.services.ipd_medications import materialize_due_tasks

logger = logging.getLogger(__name__)


def run(db, *, schedule_id=None, admission_id=None, horizon_hours=None) -> int:
    created = materialize_due_tasks(db,
                                    schedule_id=schedule_id,
                                    admission_id=admission_id,
                                    horizon_hours=horizon_hours)
    logger.info("Tick completed. New administration tasks: %d", created)
    return created


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="Materialize due medication administration tasks.")
    ap.add_argument("--db-uri", dest="db_uri", default=None,
                    help="Database URI (defaults to the configured one)")
    ap.add_argument("--schedule-id", dest="schedule_id", default=None)
    ap.add_argument("--admission-id", dest="admission_id", default=None)
    ap.add_argument("--horizon-hours", dest="horizon_hours", type=int, default=None,
                    help="Look-ahead window (default MED_MATERIALIZE_HORIZON_HOURS)")
    args = ap.parse_args(argv)

    setup_logging()
    factory = (make_session_factory(make_engine(args.db_uri))
               if args.db_uri else SessionLocal)

    db = factory()
    try:
        return run(db,
                   schedule_id=args.schedule_id,
                   admission_id=args.admission_id,
                   horizon_hours=args.horizon_hours)
    finally:
        db.close()


if __name__ == "__main__":
    main()
