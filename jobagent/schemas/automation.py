from datetime import datetime

from pydantic import BaseModel

from jobagent.automation.sessions import SessionStatus


class AutomationStartRequest(BaseModel):
    job_id: int


class AutomationSessionRequest(BaseModel):
    session_id: str


class AutomationSessionOut(BaseModel):
    id: str
    job_id: int
    status: SessionStatus
    created_at: datetime
    submit_selector: str | None = None
    filled_fields: int = 0


class AutomationActionOut(BaseModel):
    session_id: str
    job_id: int
    status: SessionStatus
    message: str


class SessionListOut(BaseModel):
    sessions: list[AutomationSessionOut]
    count: int


class KillSwitchOut(BaseModel):
    terminated: int
    message: str
    timestamp: datetime
