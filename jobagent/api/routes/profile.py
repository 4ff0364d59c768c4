import re

from fastapi import APIRouter, Depends, status as http_status

from jobagent.api.errors import repository_api_error
from jobagent.core.errors import ApiError
from jobagent.schemas.profile import MAX_RESUME_CHARS, ProfileIn, ProfileOut
from jobagent.services.repository import RepositoryError, get_repository

router = APIRouter()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@router.get("", response_model=ProfileOut)
async def get_profile(repository=Depends(get_repository)) -> ProfileOut:
    try:
        row = await repository.get_profile()
    except RepositoryError as exc:
        raise repository_api_error(exc, not_found_code="PROFILE_NOT_FOUND") from exc
    return ProfileOut(**row)


@router.put("", response_model=ProfileOut)
async def put_profile(payload: ProfileIn, repository=Depends(get_repository)) -> ProfileOut:
    if not EMAIL_RE.match(payload.email.strip()):
        raise ApiError(http_status.HTTP_400_BAD_REQUEST, "INVALID_EMAIL", "Invalid email format")
    if len(payload.resume_text) > MAX_RESUME_CHARS:
        raise ApiError(
            http_status.HTTP_400_BAD_REQUEST,
            "RESUME_TOO_LONG",
            f"Resume text must be at most {MAX_RESUME_CHARS} characters",
        )
    try:
        row = await repository.upsert_profile(payload.model_dump())
    except RepositoryError as exc:
        raise repository_api_error(exc) from exc
    return ProfileOut(**row)
