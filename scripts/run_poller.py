#!/usr/bin/env python3
"""
Run the feed poller until interrupted.

Every cycle fetches all subscribed feeds and posts new items to their
channels. Stop with Ctrl+C; a running cycle is allowed to finish.
"""

import signal
import sys
import threading
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedbot.config import reload_config
from feedbot.core import create_dispatcher, create_scheduler
from feedbot.logger import get_logger, setup_logger
from feedbot.storage.database import DatabaseManager


def main() -> None:
    """Start the poller."""
    import argparse

    parser = argparse.ArgumentParser(description="Run the feedbot poller")
    parser.add_argument(
        "--config", default="config/config.yaml", help="YAML config file (optional)"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single cycle and exit"
    )
    parser.add_argument(
        "--interval", type=int, default=None, help="Minutes between cycles (overrides config)"
    )
    args = parser.parse_args()

    config = reload_config(args.config)
    setup_logger()
    logger = get_logger("feedbot.poller")

    db_manager = DatabaseManager(db_config=config.database)
    db_manager.init_db()

    dispatcher = create_dispatcher(db_manager)
    scheduler = create_scheduler(dispatcher, interval_minutes=args.interval)

    if args.once:
        try:
            errors = scheduler.run_now()
        finally:
            dispatcher.close()
            db_manager.close()
        sys.exit(1 if errors else 0)

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    try:
        stop_event.wait()
    finally:
        scheduler.stop(wait=True)
        dispatcher.close()
        db_manager.close()


if __name__ == "__main__":
    main()
