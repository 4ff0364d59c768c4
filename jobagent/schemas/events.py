from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

SessionEventType = Literal[
    "automation_started",
    "automation_filling",
    "automation_paused",
    "automation_submitted",
    "automation_cancelled",
    "automation_error",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionEvent(BaseModel):
    type: SessionEventType
    session_id: str
    job_id: int
    message: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = "Connected to job search agent"
    timestamp: datetime = Field(default_factory=_utcnow)
