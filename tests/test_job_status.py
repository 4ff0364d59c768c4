from __future__ import annotations

import asyncio

import pytest

from jobagent.services.job_status import (
    JOB_STATUSES,
    InvalidStatusTransition,
    can_transition,
    validate_job_status_transition,
)
from jobagent.services.repository import InvalidStatusTransitionError
from jobagent.services.store import InMemoryRepository

ALLOWED = {
    ("new", "approved"),
    ("new", "rejected"),
    ("approved", "applied"),
    ("approved", "approved"),
}
PATH_TO_STATUS = {
    "new": (),
    "approved": ("approved",),
    "rejected": ("rejected",),
    "applied": ("approved", "applied"),
}
REJECTED = [(a, b) for a in JOB_STATUSES for b in JOB_STATUSES if (a, b) not in ALLOWED]


@pytest.mark.parametrize("from_status", JOB_STATUSES)
@pytest.mark.parametrize("to_status", JOB_STATUSES)
def test_transition_table(from_status: str, to_status: str) -> None:
    assert can_transition(from_status, to_status) is ((from_status, to_status) in ALLOWED)


def test_rejected_transition_names_both_states() -> None:
    with pytest.raises(InvalidStatusTransition) as exc_info:
        validate_job_status_transition(from_status="applied", to_status="new")
    assert exc_info.value.code == "INVALID_STATE_TRANSITION"
    assert str(exc_info.value) == "Cannot transition from 'applied' to 'new'"


def test_unknown_status_is_never_a_valid_target() -> None:
    assert not can_transition("new", "archived")
    assert not can_transition("archived", "new")


def test_twelve_transitions_are_rejected() -> None:
    assert len(REJECTED) == 12


@pytest.mark.parametrize(("from_status", "to_status"), REJECTED)
def test_store_leaves_status_unchanged_after_invalid_transition(from_status: str, to_status: str) -> None:
    async def run() -> str:
        repository = InMemoryRepository()
        job = await repository.insert_job(
            url="https://example.com/jobs/1",
            company="Acme",
            title="Engineer",
            description="Build things",
            fingerprint="acme__engineer",
        )
        for step in PATH_TO_STATUS[from_status]:
            await repository.update_job_status(job_id=job["id"], status=step)
        with pytest.raises(InvalidStatusTransitionError):
            await repository.update_job_status(job_id=job["id"], status=to_status)
        return (await repository.get_job(job["id"]))["status"]

    assert asyncio.run(run()) == from_status
