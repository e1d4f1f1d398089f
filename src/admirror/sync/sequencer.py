"""
PhaseSequencer: runs the seven sync phases in dependency order.

Flow for one run:
  1. Create SyncRun (status="running"), emit `status`
  2. For each phase: emit `step-start`, fetch + reconcile (or purge for
     cleanup), record a SyncLog, emit `step-complete` or `step-error`
  3. Update session progress after every phase, whatever its outcome
  4. complete_sync(overall_success), finish SyncRun, emit `complete`

If anything between steps 1 and 4 raises outside a phase, the SyncRun is
finished with status="error" and the exception propagates to the caller.

A failed phase never stops the run: its error is stored on the PhaseResult,
appended to the session and reported, and the next phase starts. Later
phases may then see fewer parents (e.g. no zones) but still run.

The caller owns session.start_sync(); this class only drives a session that
is already running.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlmodel import Session

from admirror.models.sync import SyncLog, SyncRun
from admirror.sync.phases import PHASES, Phase, PhaseResult, PhaseStatus
from admirror.sync.progress import ProgressEmitter, ProgressReporter
from admirror.sync.session import SyncSession

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    overall_success: bool
    results: List[PhaseResult]
    run_id: Optional[int] = None

    def result_for(self, key: str) -> PhaseResult:
        return next(r for r in self.results if r.key == key)

    def to_response(self) -> Dict[str, Any]:
        """Aggregate shape returned by the blocking API."""
        return {
            "success": True,
            "overallSuccess": self.overall_success,
            "results": {r.key: r.to_summary() for r in self.results},
        }


def estimate_seconds_remaining(
    elapsed_ms: float, completed_steps: int, total_steps: int
) -> Optional[float]:
    """Average phase duration so far times phases left; None before any phase finished."""
    if completed_steps <= 0:
        return None
    return (elapsed_ms / completed_steps) * (total_steps - completed_steps) / 1000


class PhaseSequencer:
    """Drives fetcher + reconciler through PHASES, one phase at a time."""

    def __init__(
        self,
        fetcher,
        reconciler,
        session: SyncSession,
        engine,
        phases: Sequence[Phase] = PHASES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            fetcher: CollectionFetcher (or AsyncMock in tests).
            reconciler: EntityReconciler.
            session: Running SyncSession to keep up to date.
            engine: SQLAlchemy engine for SyncRun/SyncLog rows.
            phases: Phase order; PHASES unless a test narrows it.
            clock: Monotonic clock used for the time estimate.
        """
        self.fetcher = fetcher
        self.reconciler = reconciler
        self.session = session
        self.engine = engine
        self.phases = tuple(phases)
        self._clock = clock
        self.run_id: Optional[int] = None

    async def run(
        self, reporter: Optional[ProgressReporter] = None, trigger: str = "api"
    ) -> SyncOutcome:
        """Run every phase and return the per-phase results.

        Phase failures are folded into the outcome; this only raises for
        problems outside any phase (e.g. the audit tables are unreachable).
        The SyncRun row is then left with status="error", and run_id
        tells the caller which row that was.
        """
        emitter = ProgressEmitter(reporter)
        run = self._create_run(trigger)
        self.run_id = run.id
        try:
            results = await self._run_phases(emitter)
        except Exception as exc:
            self._fail_run(run, f"{exc.__class__.__name__}: {exc}")
            raise

        overall_success = all(r.success for r in results)
        logger.info(
            "Sync run %s finished: overall_success=%s (%s)",
            run.id, overall_success,
            ", ".join(f"{r.key}={r.status.value}" for r in results),
        )
        await emitter.complete(overall_success, results)
        return SyncOutcome(overall_success=overall_success, results=results, run_id=run.id)

    async def _run_phases(self, emitter: ProgressEmitter) -> List[PhaseResult]:
        results = [PhaseResult(p.key, p.display_name) for p in self.phases]
        total = len(results)
        started = self._clock()

        await emitter.status("connecting", "Connecting to Broadstreet API...", 0)

        for index, (phase, result) in enumerate(zip(self.phases, results)):
            progress = _percent(index, total)
            eta = estimate_seconds_remaining(
                (self._clock() - started) * 1000, index, total
            )
            result.status = PhaseStatus.IN_PROGRESS
            self.session.update_progress(
                progress, phase.key, f"Syncing {phase.display_name}..."
            )
            await emitter.step_start(phase, progress, index + 1, total, eta)

            await self._run_phase(phase, result, emitter, index, total, self.run_id)

            progress = _percent(index + 1, total)
            if result.success:
                self.session.update_progress(
                    progress, phase.key, f"{phase.display_name} synced ({result.count} records)"
                )
                if result.rejected:
                    self.session.add_error(
                        f"{phase.display_name}: {result.rejected} record(s) rejected by validation"
                    )
                await emitter.step_complete(result, progress)
            else:
                logger.warning("Phase %s failed: %s", phase.key, result.error)
                self.session.add_error(f"{phase.display_name}: {result.error}")
                self.session.update_progress(
                    progress, phase.key, f"{phase.display_name} failed"
                )
                await emitter.step_error(result, progress)

        overall_success = all(r.success for r in results)
        self._finish_run(self.run_id, overall_success)
        self.session.complete_sync(overall_success)
        return results

    async def _run_phase(
        self,
        phase: Phase,
        result: PhaseResult,
        emitter: ProgressEmitter,
        index: int,
        total: int,
        run_id: Optional[int],
    ) -> None:
        """Execute one phase, leaving its outcome on `result`.

        Anything the phase itself raises becomes a phase failure; only the
        SyncLog bookkeeping can propagate.
        """
        log = self._create_log(run_id, phase.key)

        async def on_progress(current: int, parents: int) -> None:
            share = current / parents if parents else 1.0
            progress = _percent(index + share, total)
            self.session.update_progress(
                progress, phase.key, f"{phase.display_name}: {current}/{parents}"
            )
            await emitter.step_progress(phase, progress, current, parents)

        try:
            if phase.key == "cleanup":
                result.mark_completed(self.reconciler.purge_synced())
            else:
                fetched = await self.fetcher.fetch(phase.key, on_progress=on_progress)
                if not fetched.ok:
                    result.mark_failed(fetched.error.message)
                else:
                    summary = self.reconciler.reconcile(phase.key, fetched.records)
                    for problem in fetched.rejected + summary.errors:
                        logger.warning("Validation: %s", problem)
                    rejected = len(fetched.rejected) + summary.rejected
                    if rejected and not summary.written:
                        result.mark_failed(
                            f"all {rejected} {phase.key} record(s) failed validation",
                            rejected=rejected,
                        )
                    else:
                        result.mark_completed(summary.written, rejected)
        except Exception as exc:
            logger.exception("Phase %s raised", phase.key)
            result.mark_failed(f"{exc.__class__.__name__}: {exc}")

        self._finish_log(log, result)

    # ─── Audit rows ───────────────────────────────────────────────────────────

    def _create_run(self, trigger: str) -> SyncRun:
        run = SyncRun(started_at=datetime.utcnow(), status="running", trigger=trigger)
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def _finish_run(self, run_id: Optional[int], overall_success: bool) -> None:
        with Session(self.engine) as s:
            db_run = s.get(SyncRun, run_id)
            db_run.status = "success" if overall_success else "partial"
            db_run.overall_success = overall_success
            db_run.finished_at = datetime.utcnow()
            s.add(db_run)
            s.commit()

    def _fail_run(self, run: SyncRun, message: str) -> None:
        try:
            mark_run_failed(self.engine, run.id, message)
        except Exception:
            logger.exception("Could not mark sync run %s as failed", run.id)

    def _create_log(self, run_id: Optional[int], entity: str) -> SyncLog:
        log = SyncLog(run_id=run_id, entity=entity, started_at=datetime.utcnow())
        with Session(self.engine) as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def _finish_log(self, log: SyncLog, result: PhaseResult) -> None:
        with Session(self.engine) as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = "success" if result.success else "error"
            db_log.finished_at = datetime.utcnow()
            db_log.record_count = result.count
            db_log.rejected_count = result.rejected
            db_log.error_message = result.error
            s.add(db_log)
            s.commit()


def mark_run_failed(engine, run_id: Optional[int], message: str) -> bool:
    """Finish an existing SyncRun as status="error". False if there is no such row."""
    with Session(engine) as s:
        db_run = s.get(SyncRun, run_id) if run_id is not None else None
        if db_run is None:
            return False
        db_run.status = "error"
        db_run.overall_success = False
        db_run.finished_at = db_run.finished_at or datetime.utcnow()
        db_run.error_message = message
        s.add(db_run)
        s.commit()
    return True


def _percent(done: float, total: int) -> float:
    return round(100.0 * done / total, 1) if total else 100.0
