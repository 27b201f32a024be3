#!/usr/bin/env python3
"""
Drain the offline action queue once.
Replays queued quote, note and check-in actions against the server and
exits non-zero when any action failed.
"""

import logging
import sys

from servicepro.core.config import settings
from servicepro.core.db import init_local_cache
from servicepro.services import run_pending_sync

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def main():
    """Main function."""
    init_local_cache()
    result = run_pending_sync()

    logger.info(
        f"Processed {result.processed_count}, failed {result.failed_count}, "
        f"skipped {result.skipped_count}"
    )
    for error in result.errors:
        logger.error(error)

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
