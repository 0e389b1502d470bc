"""Periodic background work for the federation service."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from structlog import get_logger


if TYPE_CHECKING:
    from fineauth.services.federation import FederationService


logger = get_logger(__name__)

LOGIN_STATE_SWEEP_SECONDS = 60


class FederationJobs:
    """APScheduler jobs for status polling, token refresh and cleanup.

    Jobs log and swallow their own failures so one bad run never stops
    the schedule.
    """

    def __init__(self, service: "FederationService"):
        self.service = service
        self._scheduler: AsyncIOScheduler | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    async def start(self) -> None:
        if self._running:
            logger.warning("federation_jobs_already_running")
            return

        esi = self.service.settings.esi
        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            self._guarded(self.service.status_poller.refresh, "esi_status"),
            "interval",
            seconds=esi.status_refresh_seconds,
            id="esi_status",
            name="Refresh ESI server status",
        )
        self._scheduler.add_job(
            self._guarded(self.service.refresh_provider_tokens, "token_refresh"),
            "interval",
            minutes=esi.refresh_interval_minutes,
            id="token_refresh",
            name="Refresh ESI tokens",
        )
        self._scheduler.add_job(
            self._guarded(self.service.verify_character_names, "character_check"),
            "interval",
            minutes=esi.character_name_check_minutes,
            id="character_check",
            name="Verify character names",
        )
        self._scheduler.add_job(
            self._guarded(self.service.sweep_login_states, "login_state_sweep"),
            "interval",
            seconds=LOGIN_STATE_SWEEP_SECONDS,
            id="login_state_sweep",
            name="Expire login states",
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "federation_jobs_started",
            status_refresh_seconds=esi.status_refresh_seconds,
            refresh_interval_minutes=esi.refresh_interval_minutes,
            character_name_check_minutes=esi.character_name_check_minutes,
        )

        # Initial status so clients do not start out "unknown"
        self.service._spawn(self._guarded(self.service.status_poller.refresh, "esi_status")())

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("federation_jobs_stopped")

    @staticmethod
    def _guarded(
        job: Callable[[], Awaitable[Any]], job_id: str
    ) -> Callable[[], Awaitable[None]]:
        async def run() -> None:
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("scheduled_job_failed", job_id=job_id)

        run.__name__ = f"run_{job_id}"
        return run
