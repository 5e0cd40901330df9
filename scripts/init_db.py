#!/usr/bin/env python3
"""
Initialize the feedbot database.

Creates the feed, guild config, subscription and override tables.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedbot.config import reload_config
from feedbot.storage.database import init_db


def main() -> None:
    """Initialize the database."""
    import argparse

    parser = argparse.ArgumentParser(description="Initialize feedbot database")
    parser.add_argument(
        "--drop", action="store_true", help="Drop existing tables (and all data) first"
    )
    parser.add_argument(
        "--config", default="config/config.yaml", help="YAML config file (optional)"
    )
    args = parser.parse_args()

    config = reload_config(args.config)

    print(f"Initializing {config.database.type} database...")
    init_db(drop_all=args.drop)
    print("Database initialized successfully!")


if __name__ == "__main__":
    main()
