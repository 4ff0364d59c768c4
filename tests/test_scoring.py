from __future__ import annotations

import asyncio

import pytest

from jobagent.services.oracle import OracleAuthenticationError, OracleUnavailableError
from jobagent.services.scoring import MatchScorer, ScoreParseError, build_profile_text, parse_score


class ScriptedOracle:
    def __init__(self, *responses: str | Exception) -> None:
        self.responses = list(responses)
        self.calls = 0

    async def complete(self, **_: object) -> str:
        self.calls += 1
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def test_parse_score_extracts_first_integer() -> None:
    assert parse_score("Score: 87") == 87
    with pytest.raises(ScoreParseError):
        parse_score("excellent match")
    with pytest.raises(ScoreParseError):
        parse_score("150")


def test_unavailable_oracle_yields_no_score_after_three_attempts() -> None:
    oracle = ScriptedOracle(*(OracleUnavailableError("timeout") for _ in range(3)))
    sleep = RecordingSleep()
    score = asyncio.run(MatchScorer(oracle, sleep=sleep).score("Engineer at Acme", "Python dev"))
    assert score is None
    assert oracle.calls == 3
    assert sleep.delays == [5, 10]


def test_scorer_recovers_on_retry() -> None:
    oracle = ScriptedOracle("not a number", "72")
    sleep = RecordingSleep()
    assert asyncio.run(MatchScorer(oracle, sleep=sleep).score("posting", "profile")) == 72
    assert sleep.delays == [5]


def test_authentication_failure_is_not_retried() -> None:
    oracle = ScriptedOracle(OracleAuthenticationError("bad key"), "90")
    sleep = RecordingSleep()
    assert asyncio.run(MatchScorer(oracle, sleep=sleep).score("posting", "profile")) is None
    assert oracle.calls == 1
    assert sleep.delays == []


def test_build_profile_text_includes_preferences() -> None:
    text = build_profile_text(
        {
            "resume_text": "Backend engineer",
            "desired_job_titles": ["Platform Engineer"],
            "preferred_technologies": ["Python", "Go"],
            "excluded_keywords": [],
        }
    )
    assert text == "Backend engineer\nDesired titles: Platform Engineer\nPreferred technologies: Python, Go"
