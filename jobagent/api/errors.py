from fastapi import status as http_status

from jobagent.core.errors import ApiError
from jobagent.services.repository import (
    InvalidStatusTransitionError,
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)


def repository_api_error(exc: RepositoryError, *, not_found_code: str = "NOT_FOUND") -> ApiError:
    if isinstance(exc, RepositoryUnavailableError):
        return ApiError(
            http_status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_ERROR",
            "Database unavailable",
            retryable=True,
            details=str(exc),
        )
    if isinstance(exc, RepositoryNotFoundError):
        return ApiError(http_status.HTTP_404_NOT_FOUND, not_found_code, str(exc))
    if isinstance(exc, InvalidStatusTransitionError):
        return ApiError(
            http_status.HTTP_409_CONFLICT,
            exc.code,
            str(exc),
            details={"from_status": exc.from_status, "to_status": exc.to_status},
        )
    if isinstance(exc, RepositoryConflictError):
        return ApiError(http_status.HTTP_409_CONFLICT, "CONFLICT", str(exc))
    if isinstance(exc, RepositoryValidationError):
        return ApiError(http_status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", str(exc))
    return ApiError(http_status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "Database operation failed", retryable=True)


def parse_job_id(raw: str) -> int:
    try:
        job_id = int(raw)
    except ValueError:
        job_id = 0
    if job_id <= 0:
        raise ApiError(http_status.HTTP_400_BAD_REQUEST, "INVALID_JOB_ID", "Job ID must be a positive integer")
    return job_id
