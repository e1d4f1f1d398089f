"""
SyncSession: in-memory state of the sync pipeline.

States:

    idle --start_sync()--> running --complete_sync()--> completed
    completed --start_sync()--> running
    running --abort_sync()--> idle       (last run kept)
    any --reset_sync()--> idle

Only one run may be active. start_sync() while running raises
SyncAlreadyRunningError and leaves every field as it was.

One instance is owned by the API app (and one by each CLI/scheduler
process); tests build their own.
"""
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class SyncAlreadyRunningError(RuntimeError):
    """Raised when a sync is started while another one is active."""


class SyncSession:
    def __init__(self, last_completed_at: Optional[datetime] = None):
        self._lock = threading.Lock()
        self._set_defaults()
        self.last_completed_at = last_completed_at

    def _set_defaults(self) -> None:
        self.state = SyncState.IDLE
        self.is_active = False
        self.progress_percent = 0.0
        self.current_phase_key = ""
        self.status_message = ""
        self._errors: List[str] = []
        self.last_completed_at: Optional[datetime] = None
        self.last_success: Optional[bool] = None

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    def start_sync(self) -> None:
        """Enter the running state.

        Raises:
            SyncAlreadyRunningError: if a run is already active.
        """
        with self._lock:
            if self.is_active:
                raise SyncAlreadyRunningError(
                    f"A sync is already running (phase: {self.current_phase_key or 'starting'})"
                )
            self.state = SyncState.RUNNING
            self.is_active = True
            self.progress_percent = 0.0
            self.current_phase_key = "initializing"
            self.status_message = "Starting sync operation..."
            self._errors = []
            self.last_success = None

    def update_progress(self, percent: float, phase_key: str, message: str) -> None:
        with self._lock:
            self.progress_percent = min(100.0, max(0.0, float(percent)))
            self.current_phase_key = phase_key
            self.status_message = message

    def add_error(self, error: str) -> None:
        with self._lock:
            self._errors.append(error)

    def complete_sync(self, success: bool) -> None:
        with self._lock:
            self.state = SyncState.COMPLETED
            self.is_active = False
            self.progress_percent = 100.0
            self.current_phase_key = "completed" if success else "failed"
            self.status_message = (
                "Sync completed successfully"
                if success
                else f"Sync failed with {len(self._errors)} error(s)"
            )
            self.last_completed_at = datetime.utcnow()
            self.last_success = success

    def abort_sync(self) -> None:
        """Return to idle after a run that could not proceed.

        Unlike reset_sync(), the previous completed run stays on record.
        """
        with self._lock:
            last_completed_at, last_success = self.last_completed_at, self.last_success
            self._set_defaults()
            self.last_completed_at = last_completed_at
            self.last_success = last_success

    def reset_sync(self) -> None:
        """Return to idle with every field at its default, last_completed_at included."""
        with self._lock:
            self._set_defaults()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self.state.value,
                "isActive": self.is_active,
                "progress": self.progress_percent,
                "phase": self.current_phase_key,
                "message": self.status_message,
                "errors": list(self._errors),
                "errorCount": len(self._errors),
                "hasErrors": bool(self._errors),
                "lastCompletedAt": (
                    self.last_completed_at.isoformat() if self.last_completed_at else None
                ),
                "lastSuccess": self.last_success,
            }
