"""
Ingestion pipeline - orchestrates one tick from OpenSky to database.

Pipeline stages:
1. Fetch: Poll OpenSky for state vectors inside the region bounding box
2. Sanity: Reject reports without a usable position, null outliers
3. Region: Drop reports outside the bounding box
4. Classify: Mark reports inside the territory boundary (vectorized)
5. Reconcile: Close stale sessions, stitch reports into sessions
6. Commit: One transaction for everything the tick changed
7. Cleanup: Remove expired data per retention policy (when due)

An upstream failure does not abort the tick: it degrades to stale-session
closing plus cleanup. A credential failure does abort it, before any feed
call. Cancellation aborts it cleanly with nothing committed.
"""

import dataclasses
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from flighttracker.config import config
from flighttracker.exceptions import TickCancelled
from flighttracker.ingestion.opensky_client import BoundingBox, FeedResult, OpenSkyClient, Report
from flighttracker.ingestion.reconciler import ReconcileStats, SessionReconciler
from flighttracker.ingestion.retention import CleanupResult, RetentionCleaner
from flighttracker.ingestion.sanity import validate_and_filter
from flighttracker.ingestion.territory import TerritoryClassifier, TerritoryPredicate
from flighttracker.models import SessionLocal, utcnow

logger = logging.getLogger(__name__)

OUTSIDE_REGION = 'outside_region'


@dataclass
class TickResult:
    """Summary of one ingestion tick."""
    started_at: datetime
    feed: Optional[FeedResult] = None
    accepted: int = 0
    discarded: Counter = field(default_factory=Counter)
    reconcile: Optional[ReconcileStats] = None
    cleanup: Optional[CleanupResult] = None
    cancelled: bool = False


def _check_cancelled(cancel: Optional[threading.Event], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise TickCancelled(f'Cancelled {stage}')


class IngestionPipeline:
    """
    Runs ingestion ticks and keeps debug counters.

    Not thread-safe by itself: the scheduler guarantees ticks never
    overlap. Counters are read by the debug API from another thread, which
    only ever sees whole values.
    """

    def __init__(
        self,
        client: OpenSkyClient,
        classifier: TerritoryPredicate,
        reconciler: SessionReconciler,
        cleaner: RetentionCleaner,
        bbox: BoundingBox,
        max_altitude_m: float = 20000,
        max_velocity_mps: float = 400,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.client = client
        self.classifier = classifier
        self.reconciler = reconciler
        self.cleaner = cleaner
        self.bbox = bbox
        self.max_altitude_m = max_altitude_m
        self.max_velocity_mps = max_velocity_mps
        self.session_factory = session_factory or SessionLocal

        # State tracking
        self._tick_count = 0
        self._error_count = 0
        self._cancelled_count = 0
        self._reports_received = 0
        self._reports_accepted = 0
        self._discarded: Counter = Counter()
        self._snapshots_saved = 0
        self._sessions_opened = 0
        self._sessions_closed = 0
        self._feed_failures = 0
        self._last_tick_time: Optional[datetime] = None
        self._last_success_time: Optional[datetime] = None

    @classmethod
    def from_config(cls, session_factory: Optional[sessionmaker] = None) -> 'IngestionPipeline':
        """
        Build the pipeline from application configuration.

        Loads the territory boundary, so this fails fast (BoundaryError) on
        a missing or empty boundary file.
        """
        return cls(
            client=OpenSkyClient.from_config(),
            classifier=TerritoryClassifier.from_file(config.ingestion.territory_boundary_path),
            reconciler=SessionReconciler.from_config(),
            cleaner=RetentionCleaner.from_config(session_factory=session_factory),
            bbox=BoundingBox.from_region(config.region),
            max_altitude_m=config.ingestion.max_altitude_m,
            max_velocity_mps=config.ingestion.max_velocity_mps,
            session_factory=session_factory,
        )

    # -------------------------------------------------------------------------
    # Report preparation
    # -------------------------------------------------------------------------

    def prepare_reports(self, reports: List[Report], discarded: Counter) -> List[Report]:
        """
        Apply sanity filter, region filter and territory classification.

        Invalid reports are dropped and counted in `discarded` by reason.
        Returned reports carry the sanity verdict and territory flag.
        """
        kept: List[Report] = []
        for report in reports:
            verdict = validate_and_filter(
                report.latitude,
                report.longitude,
                report.altitude,
                report.velocity,
                self.max_altitude_m,
                self.max_velocity_mps,
            )
            if not verdict.is_valid:
                discarded[verdict.reason] += 1
                continue

            if not self.bbox.contains(report.latitude, report.longitude):
                discarded[OUTSIDE_REGION] += 1
                continue

            kept.append(dataclasses.replace(
                report,
                altitude=verdict.altitude,
                velocity=verdict.velocity,
                is_valid=True,
                invalid_reason=verdict.reason,
            ))

        if not kept:
            return kept

        inside = self.classifier.classify(
            [r.latitude for r in kept],
            [r.longitude for r in kept],
        )
        return [
            dataclasses.replace(report, in_territory=bool(flag))
            for report, flag in zip(kept, inside)
        ]

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def _log_feed_failure(self, feed: FeedResult) -> None:
        self._feed_failures += 1
        if feed.http_status is not None and feed.body is not None:
            logger.error(
                f'OpenSky states request failed: {feed.http_status}. '
                f'Url={self.client.states_url}. Body={feed.body}'
            )
        elif feed.error:
            logger.error(f'OpenSky states request failed: {feed.error}')
        else:
            logger.warning('No states array returned.')

    def run_once(
        self,
        cancel: Optional[threading.Event] = None,
        now: Optional[datetime] = None,
    ) -> TickResult:
        """
        Execute one ingestion tick.

        Returns a TickResult (cancelled=True if the cancel event stopped it).

        Raises:
            AuthenticationError if the OpenSky token cannot be obtained
            Any database error from the reconcile/commit step
        """
        now = now or utcnow()
        result = TickResult(started_at=now)
        self._tick_count += 1
        self._last_tick_time = now

        try:
            _check_cancelled(cancel, 'before fetch')
            logger.info(f'Fetching states at {now.isoformat()}')

            # Stage 1: Fetch (AuthenticationError propagates from here)
            feed = self.client.fetch_states(self.bbox, cancel)
            result.feed = feed
            _check_cancelled(cancel, 'after fetch')

            # Stages 2-4: Sanity, region, territory
            reports: List[Report] = []
            if feed.ok:
                self._reports_received += feed.received
                if feed.decode_failures:
                    result.discarded['decode_error'] += feed.decode_failures
                reports = self.prepare_reports(feed.reports, result.discarded)
                if not reports:
                    logger.info('No snapshots in region this tick.')
            else:
                self._log_feed_failure(feed)

            result.accepted = len(reports)

            # Stages 5-6: Reconcile and commit as one transaction
            with self.session_factory() as db:
                stats = self.reconciler.reconcile(db, reports, now)
                _check_cancelled(cancel, 'before commit')
                db.commit()
            result.reconcile = stats

            if stats.snapshots_added:
                logger.info(f'Saved {stats.snapshots_added} snapshots.')

            self._reports_accepted += result.accepted
            self._discarded.update(result.discarded)
            self._snapshots_saved += stats.snapshots_added
            self._sessions_opened += stats.sessions_opened
            self._sessions_closed += stats.sessions_closed

            # Stage 7: Cleanup (own transaction, at most once per interval)
            _check_cancelled(cancel, 'before cleanup')
            result.cleanup = self.cleaner.run_if_due(now)

            self._last_success_time = now
            return result

        except TickCancelled as e:
            self._cancelled_count += 1
            logger.info(f'Ingestion tick stopped: {e}')
            result.cancelled = True
            return result

        except Exception as e:
            self._error_count += 1
            logger.error(f'Ingestion run failed: {e}')
            raise

    @property
    def stats(self) -> dict:
        """Get ingestion statistics."""
        last_cleanup = self.cleaner.last_result
        return {
            'tick_count': self._tick_count,
            'error_count': self._error_count,
            'cancelled_count': self._cancelled_count,
            'feed_failures': self._feed_failures,
            'reports_received': self._reports_received,
            'reports_accepted': self._reports_accepted,
            'discarded': dict(self._discarded),
            'snapshots_saved': self._snapshots_saved,
            'sessions_opened': self._sessions_opened,
            'sessions_closed': self._sessions_closed,
            'last_tick_time': self._last_tick_time.isoformat() if self._last_tick_time else None,
            'last_success_time': self._last_success_time.isoformat() if self._last_success_time else None,
            'last_cleanup_run': self.cleaner.last_run.isoformat() if self.cleaner.last_run else None,
            'last_cleanup': last_cleanup.to_dict() if last_cleanup else None,
        }
