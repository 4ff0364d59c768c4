from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

MAX_RESUME_CHARS = 50_000


class ProfileIn(BaseModel):
    full_name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    resume_text: str = Field(min_length=1)
    phone: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    location: str | None = None
    bio: str | None = None
    structured_data: dict[str, Any] | None = None
    desired_job_titles: list[str] = Field(default_factory=list)
    desired_locations: list[str] = Field(default_factory=list)
    excluded_keywords: list[str] = Field(default_factory=list)
    preferred_technologies: list[str] = Field(default_factory=list)


class ProfileOut(ProfileIn):
    created_at: datetime
    updated_at: datetime
