"""Periodic ESI health check."""

from collections.abc import Callable
from typing import Any

import httpx
from structlog import get_logger

from fineauth.esi.client import ESIClient
from fineauth.esi.models import EsiStatus
from fineauth.esi.queue import TaskQueue
from fineauth.exceptions import UpstreamError


logger = get_logger(__name__)

STATUS_TASK_LABEL = "Refresh ESI server status"

StatusListener = Callable[[EsiStatus], Any]


class StatusPoller:
    """Polls the ESI status endpoint and keeps the last result."""

    def __init__(
        self,
        client: ESIClient,
        queue: TaskQueue,
        on_update: StatusListener | None = None,
    ):
        self.client = client
        self.queue = queue
        self.on_update = on_update
        self.status = EsiStatus()

    async def refresh(self) -> EsiStatus:
        """Poll once. Failures are recorded as ``unavailable``, never raised."""
        async with self.queue.track(STATUS_TASK_LABEL):
            try:
                data = await self.client.fetch_status()
                self.status = EsiStatus.online(
                    players=data.get("players"),
                    server_version=(
                        str(data["server_version"]) if data.get("server_version") else None
                    ),
                )
            except (UpstreamError, httpx.HTTPError, ValueError, AttributeError) as e:
                logger.warning("esi_status_unavailable", error=str(e))
                self.status = EsiStatus.unavailable(str(e))

        if self.on_update is not None:
            self.on_update(self.status)
        return self.status
