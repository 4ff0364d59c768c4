from __future__ import annotations

import asyncio
from typing import Any

from fastapi.testclient import TestClient

from jobagent.main import app
from jobagent.schemas.events import SessionEvent
from jobagent.services.notifications import Broadcaster, get_broadcaster


class FlakySocket:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[str] = []

    async def accept(self) -> None:
        return None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def test_websocket_greets_client() -> None:
    broadcaster = Broadcaster()
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    try:
        with TestClient(app).websocket_connect("/ws") as websocket:
            message: dict[str, Any] = websocket.receive_json()
            assert broadcaster.client_count() == 1
    finally:
        app.dependency_overrides.clear()
    assert message["type"] == "connected"


def test_broadcast_drops_clients_that_fail() -> None:
    broadcaster = Broadcaster()
    good = FlakySocket()
    bad = FlakySocket()

    async def run() -> None:
        await broadcaster.connect(good)
        await broadcaster.connect(bad)
        bad.fail = True
        await broadcaster.broadcast(
            SessionEvent(type="automation_paused", session_id="auto-1-1", job_id=1, message="Ready to submit")
        )

    asyncio.run(run())
    assert broadcaster.client_count() == 1
    assert '"automation_paused"' in good.sent[-1]
