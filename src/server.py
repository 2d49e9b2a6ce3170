"""Protean Engine runner for the fulfillment domain.

Starts the Engine that processes fulfillment events asynchronously when
PROTEAN_ENV selects an async configuration (see fulfillment/domain.toml).

Usage:
    PROTEAN_ENV=production python src/server.py
    python src/server.py --test-mode     # Drain pending work and exit
"""

import argparse
import asyncio

from protean.server.engine import Engine

from fulfillment.domain import fulfillment


async def run(test_mode: bool = False):
    fulfillment.init()
    engine = Engine(fulfillment, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Trackside fulfillment Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
