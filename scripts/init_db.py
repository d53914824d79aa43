#!/usr/bin/env python3
"""Create the casework tables and seed the demo users and apps."""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from casework.config import load_config
from casework.core.app_manager import AppManager
from casework.core.case_manager import CaseManager
from casework.core.identity import UserDirectory
from casework.core.logging import get_logger, setup_logging
from casework.storage.database import configure_database, create_tables, drop_tables


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--env-file", help="Read settings from this file instead of ./.env")
    parser.add_argument("--reset", action="store_true", help="Drop existing tables first")
    parser.add_argument("--no-seed", action="store_true", help="Only create tables")
    args = parser.parse_args()

    config = load_config(args.env_file)
    setup_logging(level=config.log_level.value)
    logger = get_logger("casework.init_db")

    try:
        configure_database(config.database_url, echo=config.database_echo)
        if args.reset:
            drop_tables()
            logger.warning(f"Dropped all tables in {config.database_url}")
        create_tables()
        logger.info(f"Tables ready in {config.database_url}")

        if not args.no_seed:
            user_directory = UserDirectory()
            app_manager = AppManager(allow_self_loops=config.allow_self_loops)
            users_added = user_directory.seed()
            apps_added = app_manager.seed_demo_apps()
            cases_added = 0
            if config.seed_demo_cases:
                cases_added = CaseManager(app_manager, user_directory).seed_demo_cases()
            logger.info(f"Seeded {users_added} users, {apps_added} apps and {cases_added} cases")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
