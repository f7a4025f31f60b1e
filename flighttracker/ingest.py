"""
Command-line ingestor.

Usage:
    flighttracker-ingest --once        # migrate + ingest one tick, exit 0/1
    flighttracker-ingest               # run the scheduler until SIGINT/SIGTERM
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from flighttracker.app import configure_logging
from flighttracker.config import config
from flighttracker.exceptions import FlightTrackerError
from flighttracker.ingestion import IngestionPipeline, IngestionScheduler
from flighttracker.models import init_db

logger = logging.getLogger('flighttracker.ingestor')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Ingest OpenSky state vectors into flight sessions.')
    parser.add_argument('--once', action='store_true', help='run a single tick and exit')
    parser.add_argument(
        '--log-level',
        default='DEBUG' if config.debug else 'INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='logging level (default: %(default)s)',
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(getattr(logging, args.log_level))

    try:
        init_db()
        pipeline = IngestionPipeline.from_config()
    except FlightTrackerError as e:
        logger.error(f'Startup failed: {e}')
        return 1

    if args.once:
        try:
            result = pipeline.run_once()
        except Exception as e:
            logger.error(f'Ingestor run failed: {e}')
            return 1
        accepted = result.accepted
        logger.info(f'Ingestor run OK ({accepted} reports accepted).')
        return 0

    scheduler = IngestionScheduler(pipeline, interval_seconds=config.ingestion.interval_seconds)

    def _handle_signal(signum, frame):
        logger.info(f'Received signal {signum}, stopping')
        scheduler.stop(timeout=0)

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.run_forever()
    return 0


if __name__ == '__main__':
    sys.exit(main())
