"""
Progress reporting for sync runs.

The sequencer talks to a ProgressEmitter, which turns lifecycle callbacks
into ordered events and hands them to a ProgressReporter. Reporters decide
the transport:

- QueueProgressReporter: pushes onto an asyncio.Queue drained by the SSE
  response. put_nowait on an unbounded queue, so a slow or vanished
  observer never holds up a phase.
- LoggingProgressReporter: log lines only (blocking API, CLI, scheduler).

Event order for one run:

    status -> (step-start -> step-progress* -> step-complete|step-error) x 7 -> complete

or a single terminal `error` when the run could not start at all.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from admirror.sync.phases import Phase, PhaseResult

logger = logging.getLogger(__name__)


class SyncEvent(str, Enum):
    STATUS = "status"
    STEP_START = "step-start"
    STEP_PROGRESS = "step-progress"
    STEP_COMPLETE = "step-complete"
    STEP_ERROR = "step-error"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = (SyncEvent.COMPLETE, SyncEvent.ERROR)


@runtime_checkable
class ProgressReporter(Protocol):
    """Receives events in the order they are produced."""

    async def report(self, event: SyncEvent, data: Dict[str, Any]) -> None:
        ...


def format_sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class QueueProgressReporter:
    """
    Progress reporter that pushes events to an asyncio.Queue for SSE streaming.

    Usage:
        queue = asyncio.Queue()
        reporter = QueueProgressReporter(queue)

        # In SSE generator:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield format_sse(item["event"], item["data"])
    """

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue

    async def report(self, event: SyncEvent, data: Dict[str, Any]) -> None:
        self.queue.put_nowait({"event": event.value, "data": data})
        if event in TERMINAL_EVENTS:
            self.signal_end()

    def signal_end(self) -> None:
        """Signal end of stream."""
        self.queue.put_nowait(None)


class LoggingProgressReporter:
    async def report(self, event: SyncEvent, data: Dict[str, Any]) -> None:
        if event == SyncEvent.STEP_PROGRESS:
            logger.debug("[%s] %s", event.value, data.get("message"))
        elif event in (SyncEvent.STEP_ERROR, SyncEvent.ERROR):
            logger.warning("[%s] %s", event.value, data.get("message"))
        else:
            logger.info("[%s] %s", event.value, data.get("message"))


class ProgressEmitter:
    """Builds event payloads from sequencer callbacks and forwards them.

    A reporter that raises is logged and otherwise ignored: the observer
    cannot stop or fail a run.
    """

    def __init__(self, reporter: Optional[ProgressReporter] = None):
        self.reporter = reporter or LoggingProgressReporter()

    async def _send(self, event: SyncEvent, data: Dict[str, Any]) -> None:
        try:
            await self.reporter.report(event, data)
        except Exception:
            logger.exception("Progress reporter failed on %s event", event.value)

    async def status(self, phase: str, message: str, progress: float) -> None:
        await self._send(
            SyncEvent.STATUS, {"phase": phase, "message": message, "progress": progress}
        )

    async def step_start(
        self,
        phase: Phase,
        progress: float,
        current_step: int,
        total_steps: int,
        estimated_seconds_remaining: Optional[float] = None,
    ) -> None:
        data = {
            "phase": phase.key,
            "message": f"Syncing {phase.display_name}...",
            "progress": progress,
            "currentStep": current_step,
            "totalSteps": total_steps,
        }
        if estimated_seconds_remaining is not None:
            data["estimatedSecondsRemaining"] = round(estimated_seconds_remaining, 1)
        await self._send(SyncEvent.STEP_START, data)

    async def step_progress(
        self, phase: Phase, progress: float, current: int, total: int
    ) -> None:
        data = {
            "phase": phase.key,
            "message": f"{phase.display_name}: {current}/{total}",
            "progress": progress,
            "currentCount": current,
            "total": total,
        }
        if phase.key == "placements":
            data["totalCampaigns"] = total
        await self._send(SyncEvent.STEP_PROGRESS, data)

    async def step_complete(self, result: PhaseResult, progress: float) -> None:
        message = f"{result.display_name} synced successfully ({result.count} records)"
        if result.rejected:
            message += f", {result.rejected} rejected"
        await self._send(
            SyncEvent.STEP_COMPLETE,
            {
                "phase": result.key,
                "message": message,
                "progress": progress,
                "stepResult": {"count": result.count, "rejected": result.rejected},
            },
        )

    async def step_error(self, result: PhaseResult, progress: float) -> None:
        await self._send(
            SyncEvent.STEP_ERROR,
            {
                "phase": result.key,
                "message": f"{result.display_name} sync failed: {result.error}",
                "progress": progress,
                "stepResult": {"error": result.error},
            },
        )

    async def complete(self, overall_success: bool, results: List[PhaseResult]) -> None:
        await self._send(
            SyncEvent.COMPLETE,
            {
                "message": (
                    "All data synced successfully"
                    if overall_success
                    else "Some sync operations failed"
                ),
                "overallSuccess": overall_success,
                "progress": 100,
                "results": {r.key: r.to_summary() for r in results},
            },
        )

    async def error(self, message: str) -> None:
        await self._send(SyncEvent.ERROR, {"message": message})
