"""Trackside fulfillment database management CLI.

Creates and drops the fulfillment schema on the configured SQL provider.
PROTEAN_ENV picks the provider (see fulfillment/domain.toml).

Usage:
    PROTEAN_ENV=production python src/manage.py setup-db
    PROTEAN_ENV=production python src/manage.py drop-db
"""

import argparse

import structlog

from fulfillment.domain import fulfillment
from fulfillment.utils.db import drop_db, setup_db

logger = structlog.get_logger(__name__)


def setup_database():
    fulfillment.init()
    setup_db(fulfillment)
    logger.info("Fulfillment schema ready")


def drop_database():
    fulfillment.init()
    drop_db(fulfillment)
    logger.info("Fulfillment schema dropped")


def main():
    parser = argparse.ArgumentParser(description="Trackside fulfillment database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    else:
        drop_database()


if __name__ == "__main__":
    main()
