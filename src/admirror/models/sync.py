"""Sync audit log models."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncRun(SQLModel, table=True):
    """Records each full pipeline run."""

    id: Optional[int] = Field(default=None, primary_key=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "error"
    overall_success: Optional[bool] = None
    trigger: str = "api"  # "api", "stream", "scheduler", "cli"
    error_message: Optional[str] = None


class SyncLog(SQLModel, table=True):
    """Records one phase of a run for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: Optional[int] = Field(default=None, foreign_key="syncrun.id", index=True)
    entity: str  # phase key: "cleanup", "networks", ...
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "error"
    record_count: int = 0
    rejected_count: int = 0
    error_message: Optional[str] = None
