from datetime import datetime
from typing import Literal

from pydantic import BaseModel

JobStatus = Literal["new", "approved", "rejected", "applied"]


class JobOut(BaseModel):
    id: int
    url: str
    company: str
    title: str
    description: str
    fingerprint: str
    source_id: str | None = None
    match_score: int | None = None
    status: JobStatus
    posted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class JobListOut(BaseModel):
    jobs: list[JobOut]
    count: int


class JobStatusPatchRequest(BaseModel):
    status: str


class SubmissionOut(BaseModel):
    id: int
    job_id: int
    session_id: str
    full_name: str
    email: str
    phone: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    location: str | None = None
    resume_text: str
    bio: str | None = None
    submitted_at: datetime
