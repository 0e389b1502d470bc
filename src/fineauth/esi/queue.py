"""In-memory FIFO of in-flight ESI work.

Every outbound call the service makes on a user's behalf is represented by
a task while it runs, so clients can see their position and a rough ETA.
"""

import asyncio
import itertools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from structlog import get_logger


logger = get_logger(__name__)

SYSTEM_CATEGORY = "system"

QueueListener = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class QueueTask:
    id: int
    label: str
    category: str = SYSTEM_CATEGORY
    owner_account_name: str | None = None
    estimated_seconds: float = 0
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started: float = field(default_factory=time.monotonic, repr=False)


class TaskQueue:
    """Arrival-ordered list of running tasks.

    Mutations are serialized by one lock and notify ``on_change`` after the
    lock is released.
    """

    def __init__(
        self,
        estimated_seconds: float = 12,
        on_change: QueueListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.estimated_seconds = estimated_seconds
        self.on_change = on_change
        self._clock = clock
        self._tasks: list[QueueTask] = []
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._tasks)

    async def _notify(self) -> None:
        if self.on_change is not None:
            await self.on_change()

    async def enqueue(
        self,
        label: str,
        owner: str | None = None,
        category: str = SYSTEM_CATEGORY,
        estimated_seconds: float | None = None,
    ) -> QueueTask:
        """Append a task at the end of the queue."""
        async with self._lock:
            task = QueueTask(
                id=next(self._ids),
                label=label,
                category=category,
                owner_account_name=owner,
                estimated_seconds=(
                    self.estimated_seconds if estimated_seconds is None else estimated_seconds
                ),
                started=self._clock(),
            )
            self._tasks.append(task)

        logger.debug("queue_task_added", task_label=label, task_id=task.id, account_name=owner)
        await self._notify()
        return task

    async def update_label(self, task_id: int, label: str) -> bool:
        """Rename a task in place."""
        async with self._lock:
            for index, task in enumerate(self._tasks):
                if task.id == task_id:
                    self._tasks[index] = replace(task, label=label)
                    break
            else:
                return False

        await self._notify()
        return True

    async def complete(self, task_id: int) -> bool:
        """Remove a task; positions behind it move up."""
        async with self._lock:
            before = len(self._tasks)
            self._tasks = [task for task in self._tasks if task.id != task_id]
            removed = len(self._tasks) != before

        if removed:
            logger.debug("queue_task_completed", task_id=task_id)
            await self._notify()
        return removed

    def position(self, task_id: int) -> int | None:
        """1-based position of a task, or None if it is not queued."""
        for index, task in enumerate(self._tasks, start=1):
            if task.id == task_id:
                return index
        return None

    def eta_seconds(self, task_id: int, now: float | None = None) -> float | None:
        """Rough seconds until a task finishes."""
        position = self.position(task_id)
        if position is None:
            return None
        task = next(task for task in self._tasks if task.id == task_id)
        elapsed = (self._clock() if now is None else now) - task.started
        return max(0.0, task.estimated_seconds * position - elapsed)

    def snapshot(self) -> list[QueueTask]:
        return list(self._tasks)

    def payload(self) -> dict[str, Any]:
        """Queue view pushed to clients as ``esi:queue``."""
        now = self._clock()
        items = []
        for position, task in enumerate(self.snapshot(), start=1):
            items.append(
                {
                    "id": task.id,
                    "label": task.label,
                    "category": task.category,
                    "owner": task.owner_account_name,
                    "queued_at": task.queued_at.isoformat(),
                    "position": position,
                    "eta_seconds": round(
                        max(0.0, task.estimated_seconds * position - (now - task.started)),
                        1,
                    ),
                }
            )
        return {
            "items": items,
            "queue_run_seconds": self.estimated_seconds,
            "updated_at": datetime.now(UTC).isoformat(),
        }

    async def clear(self) -> None:
        async with self._lock:
            self._tasks.clear()
        await self._notify()

    @asynccontextmanager
    async def track(
        self,
        label: str,
        owner: str | None = None,
        category: str = SYSTEM_CATEGORY,
        estimated_seconds: float | None = None,
    ) -> AsyncIterator[QueueTask]:
        """Keep a task queued for the duration of the block, even on error."""
        task = await self.enqueue(
            label, owner=owner, category=category, estimated_seconds=estimated_seconds
        )
        try:
            yield task
        finally:
            await self.complete(task.id)
