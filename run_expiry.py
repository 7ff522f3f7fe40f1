#!/usr/bin/env python3
"""
CanchaQR - Standalone Reservation Expiry Runner

Runs the reservation expiry sweep outside the API process, for deployments
that set RESERVATION_EXPIRY_ENABLED=false on the web service.

Usage:
    python run_expiry.py          # sweep every RESERVATION_EXPIRY_INTERVAL_MINUTES
    python run_expiry.py --once   # single sweep, then exit
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone

# Setup logging first
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Validate required environment variables
REQUIRED_VARS = ["DATABASE_URL"]
missing = [var for var in REQUIRED_VARS if not os.getenv(var)]
if missing:
    logger.error(f"Missing required environment variables: {missing}")
    sys.exit(1)

# Import after env validation
from canchaqr.core.config import settings
from canchaqr.services.reservation_expiry import expire_stale_reservations

# Graceful shutdown flag
_shutdown = False


def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    global _shutdown
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    _shutdown = True


async def main(once: bool = False):
    logger.info("=" * 60)
    logger.info("CanchaQR Reservation Expiry Service")
    logger.info("=" * 60)
    logger.info(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    logger.info(f"TTL: {settings.RESERVATION_TTL_MINUTES} min, interval: {settings.RESERVATION_EXPIRY_INTERVAL_MINUTES} min")

    if once:
        stats = await expire_stale_reservations()
        logger.info(f"Single sweep finished: {stats}")
        return

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    interval_seconds = settings.RESERVATION_EXPIRY_INTERVAL_MINUTES * 60
    try:
        while not _shutdown:
            stats = await expire_stale_reservations()
            logger.info(f"Sweep finished: {stats}")

            # Sleep in short steps so shutdown signals are honored promptly
            waited = 0
            while waited < interval_seconds and not _shutdown:
                await asyncio.sleep(1)
                waited += 1
    except Exception as e:
        logger.error(f"Expiry service error: {e}")
        raise
    finally:
        logger.info("Expiry service stopped.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Resolve reservations whose payment window has expired")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    try:
        asyncio.run(main(once=args.once))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
