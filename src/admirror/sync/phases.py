"""Phase definitions and per-phase results for the sync pipeline."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PhaseStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Phase:
    key: str
    display_name: str


# Dependency order: cleanup purges stale synced rows before any phase writes;
# placements go last because they reference campaigns, advertisements and zones.
PHASES: Tuple[Phase, ...] = (
    Phase("cleanup", "Cleanup"),
    Phase("networks", "Networks"),
    Phase("advertisers", "Advertisers"),
    Phase("zones", "Zones"),
    Phase("campaigns", "Campaigns"),
    Phase("advertisements", "Advertisements"),
    Phase("placements", "Placements"),
)

PHASE_KEYS: Tuple[str, ...] = tuple(p.key for p in PHASES)


@dataclass
class PhaseResult:
    key: str
    display_name: str
    status: PhaseStatus = PhaseStatus.PENDING
    count: int = 0
    rejected: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PhaseStatus.COMPLETED

    def mark_completed(self, count: int, rejected: int = 0) -> None:
        self.status = PhaseStatus.COMPLETED
        self.count = count
        self.rejected = rejected
        self.error = None

    def mark_failed(self, error: str, rejected: int = 0) -> None:
        self.status = PhaseStatus.FAILED
        self.count = 0
        self.rejected = rejected
        self.error = error

    def to_summary(self) -> Dict[str, Any]:
        """Shape used in the blocking response and the terminal event."""
        summary: Dict[str, Any] = {"success": self.success, "count": self.count}
        if self.error is not None:
            summary["error"] = self.error
        if self.rejected:
            summary["rejected"] = self.rejected
        return summary
