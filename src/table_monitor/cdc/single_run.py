#!/usr/bin/env python3
"""
Single Run Table Monitor

Runs one poll cycle and exits. Meant to be invoked by an external scheduler
(cron, systemd timer) rather than looping.

Exit codes:
    0  cycle succeeded
    1  cycle failed; the watermark was not advanced past unemitted rows
    2  configuration is invalid; no cycle was attempted
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from table_monitor.cdc.poll_cycle import PollCycle, RunOutcome, RunStatus
from table_monitor.config import load_config
from table_monitor.errors import ConfigInvalid
from table_monitor.utils.credentials import create_provider
from table_monitor.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_CYCLE_FAILED = 1
EXIT_CONFIG_INVALID = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Poll a table for new rows and append them to the audit log"
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file with monitor settings (default: nearest .env from the working directory)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override LOG_LEVEL"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one poll cycle and return the process exit code."""
    args = parse_args(argv)
    setup_logging("table_monitor", log_level=args.log_level or "INFO")

    try:
        config = load_config(env_file=args.env_file)
    except ConfigInvalid as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_INVALID

    setup_logging(
        "table_monitor",
        log_level=args.log_level or config.log_level,
        log_file=config.log_file
    )
    logger.info(f"Starting table monitor for source {config.source_name}")

    started = time.monotonic()
    try:
        outcome = PollCycle(config, create_provider(config)).run()
    except Exception as e:
        logger.error(f"Fatal error in main: {e}")
        outcome = RunOutcome(
            status=RunStatus.FAILED,
            rows_emitted=0,
            duration_seconds=time.monotonic() - started,
            error_detail=str(e),
        )

    print(outcome.status_line(config.source_name))
    return EXIT_SUCCESS if outcome.succeeded else EXIT_CYCLE_FAILED


if __name__ == "__main__":
    sys.exit(main())
