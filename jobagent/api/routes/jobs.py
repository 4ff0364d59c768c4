from fastapi import APIRouter, Depends, Query, status as http_status

from jobagent.api.errors import parse_job_id, repository_api_error
from jobagent.core.errors import ApiError
from jobagent.schemas.jobs import JobListOut, JobOut, JobStatusPatchRequest, SubmissionOut
from jobagent.services.job_status import JOB_STATUSES, is_valid_status
from jobagent.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("", response_model=JobListOut)
async def list_jobs(
    job_status: str | None = Query(default=None, alias="status"),
    min_score: int | None = Query(default=None),
    repository=Depends(get_repository),
) -> JobListOut:
    if job_status is not None and not is_valid_status(job_status):
        raise ApiError(
            http_status.HTTP_400_BAD_REQUEST,
            "INVALID_STATUS",
            f"Invalid status. Must be one of: {', '.join(JOB_STATUSES)}",
        )
    if min_score is not None and not 0 <= min_score <= 100:
        raise ApiError(http_status.HTTP_400_BAD_REQUEST, "INVALID_MIN_SCORE", "min_score must be between 0 and 100")
    try:
        rows = await repository.list_jobs(status=job_status, min_score=min_score)
    except RepositoryError as exc:
        raise repository_api_error(exc) from exc
    return JobListOut(jobs=[JobOut(**row) for row in rows], count=len(rows))


@router.get("/{job_id}", response_model=JobOut)
async def get_job(job_id: str, repository=Depends(get_repository)) -> JobOut:
    try:
        row = await repository.get_job(parse_job_id(job_id))
    except RepositoryError as exc:
        raise repository_api_error(exc, not_found_code="JOB_NOT_FOUND") from exc
    return JobOut(**row)


@router.patch("/{job_id}/status", response_model=JobOut)
async def set_job_status(job_id: str, payload: JobStatusPatchRequest, repository=Depends(get_repository)) -> JobOut:
    parsed_id = parse_job_id(job_id)
    if not is_valid_status(payload.status):
        raise ApiError(
            http_status.HTTP_400_BAD_REQUEST,
            "INVALID_STATUS",
            f"Invalid status. Must be one of: {', '.join(JOB_STATUSES)}",
        )
    try:
        row = await repository.update_job_status(job_id=parsed_id, status=payload.status)
    except RepositoryError as exc:
        raise repository_api_error(exc, not_found_code="JOB_NOT_FOUND") from exc
    return JobOut(**row)


@router.get("/{job_id}/submissions", response_model=list[SubmissionOut])
async def list_job_submissions(job_id: str, repository=Depends(get_repository)) -> list[SubmissionOut]:
    parsed_id = parse_job_id(job_id)
    try:
        await repository.get_job(parsed_id)
        rows = await repository.list_submissions(parsed_id)
    except RepositoryError as exc:
        raise repository_api_error(exc, not_found_code="JOB_NOT_FOUND") from exc
    return [SubmissionOut(**row) for row in rows]
