#!/usr/bin/env python3
"""
Database initialization script
Creates the locked_predictions table and reports what is already locked
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from betsmart.models import Base, engine, SessionLocal, LockedPrediction
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Create all tables

    Args:
        drop_existing: If True, drops all tables first.  Every locked
            prediction is lost and matches can be predicted again.
    """
    logger.info("Initializing BetSmart database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("This deletes every locked prediction. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    tables = inspect(engine).get_table_names()
    logger.info("Tables: %s", ", ".join(tables))
    return True


def report_locked_predictions():
    """Log how many predictions are locked, per league"""
    db = SessionLocal()
    try:
        total = db.query(LockedPrediction).count()
        logger.info("Locked predictions: %d", total)
        rows = db.execute(
            text("SELECT league, COUNT(*) FROM locked_predictions GROUP BY league ORDER BY league")
        ).fetchall()
        for league, count in rows:
            logger.info("  %s: %d", league, count)
    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize the BetSmart database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (unlocks every match)")
    parser.add_argument("--report", action="store_true", help="Report locked predictions per league")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        sys.exit(0 if check_connection() else 1)

    if not check_connection():
        logger.error("Cannot initialize database - connection failed")
        sys.exit(1)

    init_database(drop_existing=args.drop)
    if args.report:
        report_locked_predictions()
    logger.info("Database initialization complete")
