from __future__ import annotations

from functools import lru_cache
import logging
from typing import Protocol

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, AuthenticationError, PermissionDeniedError, RateLimitError

from jobagent.core.config import get_settings

logger = logging.getLogger(__name__)

# MatchScorer owns the retry schedule; the SDK must not retry underneath it.
CLIENT_MAX_RETRIES = 0


class OracleError(Exception):
    """Base error for classification oracle calls."""


class OracleAuthenticationError(OracleError):
    """Raised when the oracle rejects our credentials; retrying cannot help."""


class OracleUnavailableError(OracleError):
    """Raised for transient oracle faults: timeouts, throttling, empty responses."""


class ClassificationOracle(Protocol):
    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        json_response: bool = False,
    ) -> str: ...


class OpenAIChatOracle:
    """Chat-completion oracle backed by the OpenAI API."""

    def __init__(self, *, api_key: str | None, model: str, client: AsyncOpenAI | None = None) -> None:
        self.model = model
        self._api_key = api_key
        self._client = client

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        json_response: bool = False,
    ) -> str:
        client = self._get_client()
        extra: dict[str, object] = {}
        if json_response:
            extra["response_format"] = {"type": "json_object"}
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                **extra,
            )
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise OracleAuthenticationError(str(exc)) from exc
        except (APITimeoutError, APIConnectionError, RateLimitError) as exc:
            raise OracleUnavailableError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise OracleUnavailableError(f"empty response from model={self.model}")
        return content.strip()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise OracleAuthenticationError("JSA_OPENAI_API_KEY is not configured")
        self._client = AsyncOpenAI(api_key=self._api_key, max_retries=CLIENT_MAX_RETRIES)
        return self._client


@lru_cache
def get_scoring_oracle() -> OpenAIChatOracle:
    settings = get_settings()
    return OpenAIChatOracle(api_key=settings.openai_api_key, model=settings.scoring_model)


@lru_cache
def get_field_detection_oracle() -> OpenAIChatOracle:
    settings = get_settings()
    return OpenAIChatOracle(api_key=settings.openai_api_key, model=settings.field_detection_model)
