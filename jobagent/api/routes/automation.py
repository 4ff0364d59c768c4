from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, status as http_status

from jobagent.automation.sessions import (
    AutomationError,
    AutomationSessionManager,
    BrowserLaunchError,
    CancelError,
    FieldDetectionFailedError,
    InvalidJobStatusError,
    JobNotFoundError,
    NavigationError,
    ProfileNotFoundError,
    SessionAlreadyActiveError,
    SessionCancelledError,
    SessionNotFoundError,
    SessionNotPausedError,
    SubmissionError,
    SubmissionNotRecordedError,
    SubmitNotFoundError,
    get_session_manager,
)
from jobagent.core.errors import ApiError
from jobagent.schemas.automation import (
    AutomationActionOut,
    AutomationSessionOut,
    AutomationSessionRequest,
    AutomationStartRequest,
    KillSwitchOut,
    SessionListOut,
)
from jobagent.services.repository import RepositoryError

router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AutomationError], int], ...] = (
    (JobNotFoundError, http_status.HTTP_404_NOT_FOUND),
    (ProfileNotFoundError, http_status.HTTP_404_NOT_FOUND),
    (SessionNotFoundError, http_status.HTTP_404_NOT_FOUND),
    (InvalidJobStatusError, http_status.HTTP_409_CONFLICT),
    (SessionAlreadyActiveError, http_status.HTTP_409_CONFLICT),
    (SessionNotPausedError, http_status.HTTP_409_CONFLICT),
    (SessionCancelledError, http_status.HTTP_409_CONFLICT),
    (BrowserLaunchError, http_status.HTTP_502_BAD_GATEWAY),
    (NavigationError, http_status.HTTP_502_BAD_GATEWAY),
    (FieldDetectionFailedError, http_status.HTTP_502_BAD_GATEWAY),
    (SubmitNotFoundError, http_status.HTTP_502_BAD_GATEWAY),
    (SubmissionError, http_status.HTTP_502_BAD_GATEWAY),
    (SubmissionNotRecordedError, http_status.HTTP_500_INTERNAL_SERVER_ERROR),
    (CancelError, http_status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def automation_api_error(exc: AutomationError) -> ApiError:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    cause = exc.__cause__
    return ApiError(
        status_code,
        exc.code,
        str(exc),
        retryable=exc.retryable,
        details=repr(cause) if cause is not None else None,
    )


@router.post("/start", response_model=AutomationActionOut)
async def start_automation(
    payload: AutomationStartRequest,
    manager: AutomationSessionManager = Depends(get_session_manager),
) -> AutomationActionOut:
    if payload.job_id <= 0:
        raise ApiError(http_status.HTTP_400_BAD_REQUEST, "INVALID_JOB_ID", "job_id must be a positive integer")
    try:
        session = await manager.start(payload.job_id)
    except AutomationError as exc:
        raise automation_api_error(exc) from exc
    except RepositoryError as exc:
        raise ApiError(
            http_status.HTTP_503_SERVICE_UNAVAILABLE,
            "AUTOMATION_START_ERROR",
            "Failed to start automation",
            retryable=True,
            details=str(exc),
        ) from exc
    return AutomationActionOut(
        session_id=session.id,
        job_id=session.job_id,
        status=session.status,
        message="Automation paused at submit button. Please review and confirm.",
    )


@router.post("/confirm", response_model=AutomationActionOut)
async def confirm_automation(
    payload: AutomationSessionRequest,
    manager: AutomationSessionManager = Depends(get_session_manager),
) -> AutomationActionOut:
    try:
        session = await manager.confirm(payload.session_id)
    except AutomationError as exc:
        raise automation_api_error(exc) from exc
    return AutomationActionOut(
        session_id=session.id,
        job_id=session.job_id,
        status=session.status,
        message="Application submitted successfully",
    )


@router.post("/cancel", response_model=AutomationActionOut)
async def cancel_automation(
    payload: AutomationSessionRequest,
    manager: AutomationSessionManager = Depends(get_session_manager),
) -> AutomationActionOut:
    try:
        session = await manager.cancel(payload.session_id)
    except AutomationError as exc:
        raise automation_api_error(exc) from exc
    return AutomationActionOut(
        session_id=session.id,
        job_id=session.job_id,
        status=session.status,
        message="Automation cancelled successfully",
    )


@router.post("/kill", response_model=KillSwitchOut)
async def kill_switch(manager: AutomationSessionManager = Depends(get_session_manager)) -> KillSwitchOut:
    logger.warning("kill switch requested via api")
    terminated = await manager.kill()
    return KillSwitchOut(
        terminated=terminated,
        message=f"Kill switch activated. Terminated {terminated} session(s).",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/sessions", response_model=SessionListOut)
async def list_sessions(manager: AutomationSessionManager = Depends(get_session_manager)) -> SessionListOut:
    sessions = [AutomationSessionOut(**session.as_dict()) for session in manager.list_sessions()]
    return SessionListOut(sessions=sessions, count=len(sessions))
