from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
import logging
import os
import time
from typing import Any, Literal

from opentelemetry import trace

from jobagent.automation.driver import BrowserLauncher, PageDriver, PlaywrightLauncher
from jobagent.automation.fields import (
    FieldDetector,
    FormField,
    get_field_detector,
    is_resume_field,
    profile_value,
    write_resume_pdf,
)
from jobagent.core.config import get_settings
from jobagent.schemas.events import SessionEvent, SessionEventType
from jobagent.services.notifications import EventSink, get_broadcaster
from jobagent.services.repository import RepositoryNotFoundError, get_repository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SessionStatus = Literal["filling", "paused", "submitted", "cancelled", "error"]
TERMINAL_SESSION_STATUSES = frozenset({"submitted", "cancelled", "error"})

# Priority order matters: the first selector present on the page is the submit control.
SUBMIT_SELECTORS: tuple[str, ...] = (
    'button[type="submit"]',
    'input[type="submit"]',
    'button:has-text("Submit")',
    'button:has-text("Apply")',
    'button:has-text("Send")',
)
HIGHLIGHT_SCRIPT = """(element) => {
  element.style.border = '3px solid red';
  element.style.boxShadow = '0 0 10px red';
  element.scrollIntoView({block: 'center'});
}"""
SETTLE_AFTER_SUBMIT_MS = 3_000


class AutomationError(Exception):
    code = "AUTOMATION_ERROR"
    retryable = False


class JobNotFoundError(AutomationError):
    code = "JOB_NOT_FOUND"


class InvalidJobStatusError(AutomationError):
    code = "INVALID_JOB_STATUS"


class ProfileNotFoundError(AutomationError):
    code = "PROFILE_NOT_FOUND"


class SessionAlreadyActiveError(AutomationError):
    code = "SESSION_ALREADY_ACTIVE"


class BrowserLaunchError(AutomationError):
    code = "BROWSER_LAUNCH_FAILED"
    retryable = True


class NavigationError(AutomationError):
    code = "NAVIGATION_FAILED"
    retryable = True


class FieldDetectionFailedError(AutomationError):
    code = "FIELD_DETECTION_FAILED"
    retryable = True


class SubmitNotFoundError(AutomationError):
    code = "SUBMIT_NOT_FOUND"


class SessionNotFoundError(AutomationError):
    code = "SESSION_NOT_FOUND"


class SessionNotPausedError(AutomationError):
    code = "SESSION_NOT_PAUSED"


class SessionCancelledError(AutomationError):
    code = "SESSION_CANCELLED"


class SubmissionError(AutomationError):
    code = "SUBMISSION_ERROR"
    retryable = True


class SubmissionNotRecordedError(AutomationError):
    code = "SUBMISSION_NOT_RECORDED"


class CancelError(AutomationError):
    code = "CANCEL_ERROR"
    retryable = True


@dataclass(slots=True)
class AutomationSession:
    id: str
    job_id: int
    status: SessionStatus
    created_at: datetime
    driver: PageDriver
    submit_selector: str | None = None
    filled_fields: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "status": self.status,
            "created_at": self.created_at,
            "submit_selector": self.submit_selector,
            "filled_fields": self.filled_fields,
        }


class AutomationSessionManager:
    """Owns the registry of in-flight application sessions.

    Every status change happens under the session's lock through start, confirm,
    cancel or kill. Browser work runs outside the lock so cancel can interrupt it.
    """

    def __init__(
        self,
        *,
        repository: Any,
        launcher: BrowserLauncher,
        detector: FieldDetector,
        events: EventSink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.launcher = launcher
        self.detector = detector
        self.events = events
        self._clock = clock
        self._sessions: dict[str, AutomationSession] = {}
        self._starting_jobs: set[int] = set()

    def list_sessions(self) -> list[AutomationSession]:
        return list(self._sessions.values())

    def get_session(self, session_id: str) -> AutomationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Automation session {session_id} not found")
        return session

    async def start(self, job_id: int) -> AutomationSession:
        """Open the posting in a browser, fill what we can and stop in front of the submit control."""
        with tracer.start_as_current_span("automation.start") as span:
            span.set_attribute("job.id", job_id)
            try:
                job = await self.repository.get_job(job_id)
            except RepositoryNotFoundError as exc:
                raise JobNotFoundError(f"Job with ID {job_id} not found") from exc
            if job["status"] != "approved":
                raise InvalidJobStatusError(f"Job must be in 'approved' status. Current status: {job['status']}")
            if job_id in self._starting_jobs or any(
                session.job_id == job_id and session.status not in TERMINAL_SESSION_STATUSES
                for session in self._sessions.values()
            ):
                raise SessionAlreadyActiveError(f"Job {job_id} already has an active automation session")
            self._starting_jobs.add(job_id)
            try:
                try:
                    profile = await self.repository.get_profile()
                except RepositoryNotFoundError as exc:
                    raise ProfileNotFoundError("User profile not found") from exc
                session = await self._open_session(job_id)
            finally:
                self._starting_jobs.discard(job_id)
            span.set_attribute("session.id", session.id)

            await self._emit(session, "automation_started", f"Starting automation for {job['company']} - {job['title']}")
            try:
                await session.driver.navigate(job["url"])
            except Exception as exc:
                raise await self._abort(
                    session,
                    f"Navigation failed: {exc}",
                    NavigationError(f"Failed to navigate to job URL: {exc}"),
                ) from exc

            await self._fill_form(session, profile)
            await self._pause_at_submit(session)
            return session

    async def confirm(self, session_id: str) -> AutomationSession:
        """Click the located submit control and record the application; only valid while paused."""
        with tracer.start_as_current_span("automation.confirm") as span:
            span.set_attribute("session.id", session_id)
            session = self.get_session(session_id)
            async with session.lock:
                if session.status != "paused":
                    raise SessionNotPausedError(
                        f"Session must be paused to confirm submission. Current status: {session.status}"
                    )
                try:
                    profile = await self.repository.get_profile()
                    selector = await self._click_submit(session)
                    if selector is None:
                        raise SubmitNotFoundError("Failed to click submit button")
                except Exception as exc:
                    session.status = "error"
                    await self._release(session)
                    await self._emit(session, "automation_error", f"Error confirming submission: {exc}")
                    raise SubmissionError(f"Failed to confirm submission: {exc}") from exc
                # The form is sent; from here a failure must not invite a second submission.
                try:
                    await self.repository.update_job_status(job_id=session.job_id, status="applied")
                    await self.repository.record_submission(job_id=session.job_id, session_id=session.id, profile=profile)
                except Exception as exc:
                    session.status = "error"
                    logger.error(
                        "submission sent but not recorded session=%s job=%s error=%s", session.id, session.job_id, exc
                    )
                    await self._release(session)
                    await self._emit(session, "automation_error", f"Application submitted but not recorded: {exc}")
                    raise SubmissionNotRecordedError(
                        f"Application for job {session.job_id} was submitted but could not be recorded: {exc}"
                    ) from exc
                session.status = "submitted"

            logger.info("application submitted session=%s job=%s", session.id, session.job_id)
            await self._emit(session, "automation_submitted", "Application submitted successfully")
            try:
                await session.driver.wait(SETTLE_AFTER_SUBMIT_MS)
            except Exception as exc:
                logger.info("settle wait interrupted session=%s error=%s", session.id, exc)
            finally:
                await self._release(session)
            return session

    async def cancel(self, session_id: str) -> AutomationSession:
        with tracer.start_as_current_span("automation.cancel") as span:
            span.set_attribute("session.id", session_id)
            session = self.get_session(session_id)
            close_error: Exception | None = None
            async with session.lock:
                if session.status in TERMINAL_SESSION_STATUSES:
                    raise SessionNotFoundError(f"Automation session {session_id} already {session.status}")
                try:
                    await session.driver.close()
                except Exception as exc:
                    close_error = exc
                    logger.error("browser close failed during cancel session=%s error=%s", session.id, exc)
                session.status = "cancelled"
                self._sessions.pop(session.id, None)

            logger.info("session cancelled session=%s job=%s", session.id, session.job_id)
            await self._emit(session, "automation_cancelled", "Automation cancelled")
            if close_error is not None:
                raise CancelError(f"Browser did not close cleanly: {close_error}") from close_error
            return session

    async def kill(self) -> int:
        """Cancel every registered session; returns how many were attempted."""
        with tracer.start_as_current_span("automation.kill") as span:
            sessions = list(self._sessions.values())
            span.set_attribute("sessions.count", len(sessions))
            logger.warning("kill switch activated sessions=%s", len(sessions))
            results = await asyncio.gather(*(self._terminate(session) for session in sessions), return_exceptions=True)
            for session, result in zip(sessions, results):
                if isinstance(result, BaseException):
                    logger.error("kill switch could not cleanly terminate session=%s error=%s", session.id, result)
            logger.warning("kill switch finished terminated=%s remaining=%s", len(sessions), len(self._sessions))
            return len(sessions)

    async def _terminate(self, session: AutomationSession) -> None:
        if session.status in TERMINAL_SESSION_STATUSES:
            await self._release(session)
            return
        try:
            await self.cancel(session.id)
        finally:
            self._sessions.pop(session.id, None)

    async def _open_session(self, job_id: int) -> AutomationSession:
        try:
            driver = await self.launcher.launch()
        except Exception as exc:
            logger.exception("browser launch failed job=%s", job_id)
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc

        now = self._clock()
        session = AutomationSession(
            id=f"auto-{job_id}-{int(now * 1000)}",
            job_id=job_id,
            status="filling",
            created_at=datetime.fromtimestamp(now, tz=timezone.utc),
            driver=driver,
        )
        self._sessions[session.id] = session
        logger.info("session registered session=%s job=%s", session.id, job_id)
        return session

    async def _fill_form(self, session: AutomationSession, profile: dict[str, Any]) -> None:
        try:
            html = await session.driver.content()
            fields = await self.detector.detect(html)
        except Exception as exc:
            raise await self._abort(
                session,
                "Failed to detect form fields. Please check the job application page manually.",
                FieldDetectionFailedError(f"Field detection failed: {exc}"),
            ) from exc

        for form_field in fields:
            if session.status != "filling":
                break
            try:
                if await self._fill_field(session.driver, form_field, profile):
                    session.filled_fields += 1
            except Exception as exc:
                logger.warning(
                    "field fill failed session=%s label=%s selector=%s error=%s",
                    session.id,
                    form_field.label,
                    form_field.selector,
                    exc,
                )

        if session.status != "filling":
            raise SessionCancelledError(f"Automation session {session.id} was {session.status} while filling")
        await self._emit(
            session,
            "automation_filling",
            f"Form fields filled ({session.filled_fields} of {len(fields)} detected)",
        )

    async def _fill_field(self, driver: PageDriver, form_field: FormField, profile: dict[str, Any]) -> bool:
        if is_resume_field(form_field) and form_field.input_type == "file":
            if not await driver.query_selector(form_field.selector):
                logger.info("resume upload selector not on page selector=%s", form_field.selector)
                return False
            path = write_resume_pdf(profile)
            try:
                await driver.set_input_file(form_field.selector, path)
            finally:
                os.remove(path)
            return True

        value = str(profile.get("resume_text") or "") if is_resume_field(form_field) else profile_value(form_field, profile)
        if not value or form_field.input_type == "file":
            return False
        if not await driver.query_selector(form_field.selector):
            logger.info("detected selector not on page label=%s selector=%s", form_field.label, form_field.selector)
            return False
        await driver.fill(form_field.selector, value)
        return True

    async def _pause_at_submit(self, session: AutomationSession) -> None:
        try:
            selector = await self._locate_submit(session.driver)
        except Exception as exc:
            raise await self._abort(session, f"Error pausing at submit: {exc}", SubmitNotFoundError(str(exc))) from exc
        if selector is None:
            raise await self._abort(session, "Submit button not found", SubmitNotFoundError("Submit button not found"))

        try:
            await session.driver.evaluate(HIGHLIGHT_SCRIPT, selector=selector)
        except Exception as exc:
            logger.info("could not highlight submit control session=%s error=%s", session.id, exc)

        async with session.lock:
            if session.status != "filling":
                raise SessionCancelledError(f"Automation session {session.id} was {session.status} before pausing")
            session.submit_selector = selector
            session.status = "paused"
        logger.info("session paused at submit session=%s selector=%s", session.id, selector)
        await self._emit(session, "automation_paused", "Ready to submit - waiting for confirmation")

    @staticmethod
    async def _locate_submit(driver: PageDriver) -> str | None:
        for selector in SUBMIT_SELECTORS:
            if await driver.query_selector(selector):
                return selector
        return None

    async def _click_submit(self, session: AutomationSession) -> str | None:
        for selector in SUBMIT_SELECTORS:
            if await session.driver.query_selector(selector):
                await session.driver.click(selector)
                logger.info("clicked submit control session=%s selector=%s", session.id, selector)
                return selector
        return None

    async def _abort(self, session: AutomationSession, message: str, error: AutomationError) -> AutomationError:
        """Move a session that hit a resource fault to ``error`` and release it.

        Returns the exception the caller should raise; a session that was already
        cancelled or killed reports that instead.
        """
        async with session.lock:
            if session.status in TERMINAL_SESSION_STATUSES:
                return SessionCancelledError(f"Automation session {session.id} was {session.status}")
            session.status = "error"
            await self._release(session)
        logger.warning("session failed session=%s job=%s reason=%s", session.id, session.job_id, message)
        await self._emit(session, "automation_error", message)
        return error

    async def _release(self, session: AutomationSession) -> None:
        try:
            await session.driver.close()
        except Exception as exc:
            logger.error("browser close failed session=%s error=%s", session.id, exc)
        finally:
            self._sessions.pop(session.id, None)

    async def _emit(self, session: AutomationSession, event_type: SessionEventType, message: str) -> None:
        event = SessionEvent(type=event_type, session_id=session.id, job_id=session.job_id, message=message)
        try:
            await self.events.broadcast(event)
        except Exception as exc:
            logger.warning("event broadcast failed type=%s session=%s error=%s", event_type, session.id, exc)


@lru_cache
def get_session_manager() -> AutomationSessionManager:
    settings = get_settings()
    return AutomationSessionManager(
        repository=get_repository(),
        launcher=PlaywrightLauncher(headless=settings.browser_headless, slow_mo_ms=settings.browser_slow_mo_ms),
        detector=get_field_detector(),
        events=get_broadcaster(),
    )
