"""
MirrorSyncService: the one entry point every trigger (API, SSE stream,
scheduler, CLI) goes through.

    service.begin()                 # single-flight guard; may raise SyncAlreadyRunningError
    outcome = await service.execute(reporter, trigger="stream")

or simply `await service.run(...)` for both steps. begin() is separate so the
streaming route can answer 409 before it opens the event stream.

If the rate-limited client cannot even be built (no token, bad config) or
the run breaks outside every phase, the observer gets one terminal `error`
event, the session goes back to idle (keeping its last completed run), the
run is recorded as a single status="error" SyncRun, and SyncAbortedError is
raised.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlmodel import Session, select

from admirror.broadstreet.client import BroadstreetClient
from admirror.broadstreet.fetcher import CollectionFetcher
from admirror.broadstreet.rate_limiter import RateLimiter
from admirror.models.sync import SyncRun
from admirror.sync.progress import ProgressEmitter, ProgressReporter
from admirror.sync.reconciler import EntityReconciler
from admirror.sync.sequencer import PhaseSequencer, SyncOutcome, mark_run_failed
from admirror.sync.session import SyncSession

logger = logging.getLogger(__name__)


class SyncAbortedError(RuntimeError):
    """Raised when a run could not proceed; already reported to the observer."""


class MirrorSyncService:
    def __init__(
        self,
        engine,
        session: SyncSession,
        settings,
        client_factory: Optional[Callable[[RateLimiter], BroadstreetClient]] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Args:
            engine: SQLAlchemy engine of the mirror.
            session: The SyncSession this service owns.
            settings: Settings instance (API token, base URL, rate interval).
            client_factory: Builds a client around the shared limiter.
                Defaults to BroadstreetClient.from_settings.
            rate_limiter: Shared limiter; one per service so spacing holds
                across consecutive runs too.
        """
        self.engine = engine
        self.session = session
        self.settings = settings
        self.rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_interval_seconds)
        self._client_factory = client_factory or (
            lambda limiter: BroadstreetClient.from_settings(settings, limiter)
        )

    def begin(self) -> None:
        """Claim the session for a new run (raises SyncAlreadyRunningError)."""
        self.session.start_sync()

    async def execute(
        self, reporter: Optional[ProgressReporter] = None, trigger: str = "api"
    ) -> SyncOutcome:
        """Run the pipeline on a session already claimed with begin()."""
        try:
            client = self._client_factory(self.rate_limiter)
        except Exception as exc:
            await self._abort(reporter, trigger, f"Failed to start sync: {exc}")
            raise SyncAbortedError(str(exc)) from exc

        sequencer = None
        try:
            async with client:
                sequencer = PhaseSequencer(
                    fetcher=CollectionFetcher(client, self.engine),
                    reconciler=EntityReconciler(self.engine),
                    session=self.session,
                    engine=self.engine,
                )
                return await sequencer.run(reporter, trigger=trigger)
        except Exception as exc:
            logger.exception("Sync run aborted")
            run_id = sequencer.run_id if sequencer is not None else None
            await self._abort(
                reporter, trigger, f"Failed to sync data: {exc}", run_id=run_id
            )
            raise SyncAbortedError(str(exc)) from exc

    async def run(
        self, reporter: Optional[ProgressReporter] = None, trigger: str = "api"
    ) -> SyncOutcome:
        self.begin()
        return await self.execute(reporter, trigger=trigger)

    async def _abort(
        self,
        reporter: Optional[ProgressReporter],
        trigger: str,
        message: str,
        run_id: Optional[int] = None,
    ) -> None:
        """Report a run that could not finish.

        A SyncRun the sequencer already created is finished as the error
        row; otherwise a new one is inserted.
        """
        logger.error(message)
        self.session.abort_sync()
        try:
            self._record_abort(trigger, message, run_id)
        except Exception:
            logger.exception("Could not record aborted sync run")
        await ProgressEmitter(reporter).error(message)

    def _record_abort(self, trigger: str, message: str, run_id: Optional[int]) -> None:
        if mark_run_failed(self.engine, run_id, message):
            return
        with Session(self.engine) as s:
            s.add(SyncRun(
                started_at=datetime.utcnow(),
                finished_at=datetime.utcnow(),
                status="error",
                overall_success=False,
                trigger=trigger,
                error_message=message,
            ))
            s.commit()


def last_completed_at(engine) -> Optional[datetime]:
    """Finish time of the most recent run that got through every phase."""
    with Session(engine) as s:
        run = s.exec(
            select(SyncRun)
            .where(SyncRun.status.in_(("success", "partial")))
            .order_by(SyncRun.finished_at.desc())
        ).first()
    return run.finished_at if run else None


def build_sync_service(engine, settings) -> MirrorSyncService:
    """Service with a fresh session seeded from the persisted run history."""
    session = SyncSession(last_completed_at=last_completed_at(engine))
    return MirrorSyncService(engine=engine, session=session, settings=settings)
