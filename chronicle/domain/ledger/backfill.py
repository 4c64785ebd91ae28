from typing import Awaitable, Callable, Dict
import asyncio
import structlog

from chronicle.domain.errors import ChronicleError

logger = structlog.get_logger(__name__)


class BackfillScheduler:
    """Background ancestor backfill with one in-flight task per cid"""

    def __init__(self):
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._in_flight.values() if not task.done())

    def schedule(self, cid: str, job: Callable[[str], Awaitable[int]]) -> asyncio.Task:
        """Start ``job(cid)`` unless a task for ``cid`` is already running"""

        existing = self._in_flight.get(cid)
        if existing is not None and not existing.done():
            logger.debug("Backfill already in flight", cid=cid)
            return existing

        task = asyncio.create_task(self._run(cid, job), name=f"backfill-{cid}")
        self._in_flight[cid] = task
        task.add_done_callback(lambda done: self._forget(cid, done))
        return task

    def _forget(self, cid: str, task: asyncio.Task) -> None:
        if self._in_flight.get(cid) is task:
            del self._in_flight[cid]

    async def _run(self, cid: str, job: Callable[[str], Awaitable[int]]) -> int:
        try:
            fetched = await job(cid)
        except ChronicleError as e:
            # Best effort: a later miss on the same chain resumes from here
            logger.warning("Backfill stopped", cid=cid, error=str(e), error_type=type(e).__name__)
            return 0

        logger.info("Backfill finished", cid=cid, fetched=fetched)
        return fetched

    async def wait_idle(self) -> None:
        """Wait for every running backfill task to finish"""

        while True:
            pending = [task for task in self._in_flight.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding backfill work"""

        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
