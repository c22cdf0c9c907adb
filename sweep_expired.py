#!/usr/bin/env python3
"""
Expire blood requests whose urgency window has elapsed

Intended for cron, e.g. every minute:
    * * * * * cd /srv/bloodlink && python sweep_expired.py
Safe to run as often as needed; already-terminal requests are never touched.
Runs alongside the API against the same data directory: both go through the
JSON stores' file lock, so neither overwrites the other's writes.
"""
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from bloodlink.core.config import LOG_LEVEL
from bloodlink.database.storage import create_request_store, create_user_directory
from bloodlink.services.lifecycle import LifecycleController

logger = logging.getLogger("sweep_expired")


def main() -> int:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    controller = LifecycleController(create_request_store(), create_user_directory())
    expired = controller.expire()
    for request in expired:
        logger.info("Expired request %s (%s, %s)", request.id, request.blood_type.value, request.urgency.value)
    logger.info("Sweep complete. Expired: %d", len(expired))
    return 0


if __name__ == "__main__":
    sys.exit(main())
