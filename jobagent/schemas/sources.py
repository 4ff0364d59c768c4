from typing import Literal

from pydantic import BaseModel


class SourceOut(BaseModel):
    id: str
    name: str
    enabled: bool
    available: bool
    priority: int
    max_jobs: int
    description: str
    staleness_horizon_hours: float
    missing_date_policy: Literal["accept", "discard"]


class MissingAuthOut(BaseModel):
    id: str
    name: str
    required: list[str]


class SourceStatsOut(BaseModel):
    total: int
    enabled: int
    available: int
    missing_auth: list[MissingAuthOut]
    sources: list[SourceOut]
