"""Tests for the ESI status poller."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from fineauth.esi.queue import TaskQueue
from fineauth.esi.status import StatusPoller
from fineauth.exceptions import UpstreamError


@pytest.fixture
def queue():
    return TaskQueue(estimated_seconds=12)


@pytest.mark.asyncio
async def test_online_status(esi_client, queue):
    updates = []
    poller = StatusPoller(esi_client, queue, on_update=updates.append)

    status = await poller.refresh()

    assert status.status == "online"
    assert status.players == 23456
    assert status.server_version == "2345678"
    assert status.last_updated is not None
    assert status.error is None
    assert updates == [status]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_upstream_failure_marks_unavailable(esi_client, provider, queue):
    provider.esi_status = 503
    poller = StatusPoller(esi_client, queue)

    status = await poller.refresh()

    assert status.status == "unavailable"
    assert status.players is None
    assert "503" in status.error
    assert len(queue) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UpstreamError("ESI status error: 502", upstream_status=502),
        httpx.ConnectError("connection refused"),
        ValueError("Expecting value"),
    ],
)
async def test_poll_failures_never_raise(queue, error):
    client = MagicMock()
    client.fetch_status = AsyncMock(side_effect=error)
    poller = StatusPoller(client, queue)

    status = await poller.refresh()

    assert status.status == "unavailable"
    assert poller.status is status


@pytest.mark.asyncio
async def test_status_task_is_queued_while_polling(queue):
    seen = []

    async def fetch_status():
        seen.append([t.label for t in queue.snapshot()])
        return {"players": 1, "server_version": 1}

    client = MagicMock()
    client.fetch_status = fetch_status
    poller = StatusPoller(client, queue)

    await poller.refresh()

    assert seen == [["Refresh ESI server status"]]
    assert poller.status.server_version == "1"
