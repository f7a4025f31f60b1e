"""
Fixed-interval tick scheduler.

Runs the ingestion pipeline on a single worker thread: one tick
immediately, then one per interval, forever, until stopped. Ticks never
overlap; if a tick overruns its period the missed periods are skipped,
not queued. A failing tick is logged and the loop carries on with the
next one.

The stop event doubles as the tick's cancellation signal, so stop()
interrupts both the wait between ticks and the running tick at its next
checkpoint.
"""

import logging
import threading
import time
from typing import Callable, Optional

from flighttracker.config import config
from flighttracker.ingestion.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """Timer loop around IngestionPipeline.run_once."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.interval = config.ingestion.interval_seconds if interval_seconds is None else interval_seconds
        if self.interval <= 0:
            raise ValueError('interval_seconds must be positive')

        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._ticks_run = 0
        self._ticks_failed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_tick(self) -> None:
        self._ticks_run += 1
        try:
            self.pipeline.run_once(cancel=self._stop_event)
        except Exception as e:
            self._ticks_failed += 1
            logger.warning(f'Tick {self._ticks_run} failed ({type(e).__name__}); next tick in {self.interval}s')

    def run_forever(self, max_ticks: Optional[int] = None) -> None:
        """
        Run ticks until stop() is called (or max_ticks have run).

        This method blocks - use start_background() for non-blocking.
        """
        logger.info(f'Starting continuous ingestion (interval={self.interval}s)')

        next_run = self._clock()
        while not self._stop_event.is_set():
            self._run_tick()

            if max_ticks is not None and self._ticks_run >= max_ticks:
                break

            # Next slot on the fixed grid; coalesce slots lost to an overrun
            next_run += self.interval
            now = self._clock()
            if next_run <= now:
                skipped = int((now - next_run) // self.interval) + 1
                next_run += skipped * self.interval
                logger.warning(f'Tick overran its interval; skipped {skipped} slot(s)')

            if self._stop_event.wait(max(0.0, next_run - self._clock())):
                break

        logger.info('Ingestion stopped')

    def start_background(self) -> None:
        """Start ingestion in background thread."""
        if self.running:
            logger.warning('Ingestion already running')
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            name='ingestion-scheduler',
            daemon=True,
        )
        self._thread.start()
        logger.info('Background ingestion started')

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop and cancel the running tick."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def stats(self) -> dict:
        return {
            'running': self.running,
            'interval_seconds': self.interval,
            'ticks_run': self._ticks_run,
            'ticks_failed': self._ticks_failed,
        }
