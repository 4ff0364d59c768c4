from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from jobagent.services.oracle import ClassificationOracle, OracleAuthenticationError
from jobagent.services.rate_limit import Sleep

logger = logging.getLogger(__name__)

SCORING_ATTEMPTS = 3
SCORING_BACKOFF_SECONDS: tuple[float, ...] = (5.0, 10.0, 20.0)
SCORING_TEMPERATURE = 0.3
SCORING_MAX_TOKENS = 10

SYSTEM_PROMPT = "You are a job matching expert. Respond only with a number between 0 and 100."
USER_PROMPT_TEMPLATE = """Compare the job description with the candidate profile and rate the match from 0 to 100.
Consider skills, experience level, domain relevance and responsibilities.
Respond with ONLY the number.

Job Description:
{posting_text}

Candidate Profile:
{profile_text}

Match Score (0-100):"""

_INTEGER_RE = re.compile(r"-?\d+")


class ScoreParseError(ValueError):
    pass


def parse_score(content: str) -> int:
    match = _INTEGER_RE.search(content)
    if match is None:
        raise ScoreParseError(f"no score in oracle response: {content!r}")
    score = int(match.group(0))
    if not 0 <= score <= 100:
        raise ScoreParseError(f"score out of range: {score}")
    return score


def build_profile_text(profile: dict[str, Any]) -> str:
    parts = [str(profile.get("resume_text") or "").strip()]
    for label, field in (
        ("Desired titles", "desired_job_titles"),
        ("Preferred technologies", "preferred_technologies"),
        ("Excluded keywords", "excluded_keywords"),
    ):
        values = [value for value in profile.get(field) or [] if value]
        if values:
            parts.append(f"{label}: {', '.join(values)}")
    return "\n".join(part for part in parts if part)


class MatchScorer:
    def __init__(
        self,
        oracle: ClassificationOracle,
        *,
        attempts: int = SCORING_ATTEMPTS,
        backoff_seconds: tuple[float, ...] = SCORING_BACKOFF_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.oracle = oracle
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def score(self, posting_text: str, profile_text: str) -> int | None:
        """Return a 0-100 match score, or None when the oracle cannot produce one."""
        prompt = USER_PROMPT_TEMPLATE.format(posting_text=posting_text, profile_text=profile_text)
        for attempt in range(1, self.attempts + 1):
            if attempt > 1:
                delay = self.backoff_seconds[min(attempt - 2, len(self.backoff_seconds) - 1)]
                logger.info("scoring retry attempt=%s delay_seconds=%.0f", attempt, delay)
                await self._sleep(delay)
            try:
                content = await self.oracle.complete(
                    system_prompt=SYSTEM_PROMPT,
                    user_prompt=prompt,
                    temperature=SCORING_TEMPERATURE,
                    max_tokens=SCORING_MAX_TOKENS,
                )
                return parse_score(content)
            except OracleAuthenticationError as exc:
                logger.error("scoring oracle rejected credentials; not retrying: %s", exc)
                return None
            except Exception as exc:
                logger.warning("scoring attempt=%s/%s failed: %s", attempt, self.attempts, exc)
        logger.error("scoring gave up after %s attempts", self.attempts)
        return None
