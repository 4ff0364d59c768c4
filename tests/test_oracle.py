from __future__ import annotations

import asyncio

import pytest

from jobagent.services.oracle import OpenAIChatOracle, OracleAuthenticationError


def test_client_leaves_retries_to_the_scorer() -> None:
    oracle = OpenAIChatOracle(api_key="sk-test", model="gpt-4o-mini")

    client = oracle._get_client()

    assert client.max_retries == 0
    assert oracle._get_client() is client
    asyncio.run(oracle.close())


def test_missing_api_key_is_an_authentication_error() -> None:
    oracle = OpenAIChatOracle(api_key=None, model="gpt-4o-mini")

    with pytest.raises(OracleAuthenticationError):
        asyncio.run(
            oracle.complete(system_prompt="system", user_prompt="user", temperature=0.0, max_tokens=5)
        )
