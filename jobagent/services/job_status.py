from __future__ import annotations

from typing import Literal

JobStatus = Literal["new", "approved", "rejected", "applied"]

JOB_STATUSES: tuple[str, ...] = ("new", "approved", "rejected", "applied")

# approved -> approved returns a posting to the approval pool after an aborted automation run.
JOB_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "new": frozenset({"approved", "rejected"}),
    "approved": frozenset({"applied", "approved"}),
    "rejected": frozenset(),
    "applied": frozenset(),
}


class InvalidStatusTransition(ValueError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


def is_valid_status(value: str) -> bool:
    return value in JOB_STATUS_TRANSITIONS


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in JOB_STATUS_TRANSITIONS.get(from_status, frozenset())


def validate_job_status_transition(*, from_status: str, to_status: str) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidStatusTransition(from_status, to_status)
