# app/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect

from app.core.log_config import setup_logging
from app.db.session import engine
from app.db.base import Base

# Import all models so metadata is complete
import app.models  # noqa: F401

logger = logging.getLogger(__name__)


def print_tables(bind) -> set:
    names = set(inspect(bind).get_table_names())
    logger.info("Existing tables: %s", sorted(names))
    return names


def run(fresh: bool = False) -> None:
    if fresh:
        logger.warning("Dropping ALL tables (dev only) …")
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating all missing tables …")
    Base.metadata.create_all(bind=engine)
    print_tables(engine)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Initialize the IPD database (create tables).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    setup_logging()
    run(fresh=args.fresh)
