"""
Poll loops for the console views.

Each view-owned loop is a Poller: one APScheduler interval job plus a
generation token. start() captures a fresh generation, stop() removes the
job exactly once and advances the generation, so a response that lands
after the view went away fails is_current() and is dropped.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Awaitable[None]]


class Generation:
    """Monotonic token used to tag work started under a given view lifetime."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def advance(self) -> int:
        self._value += 1
        return self._value

    def is_current(self, token: int) -> bool:
        return token == self._value


class Poller:
    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        job_id: str,
        interval_sec: float,
        callback: TickCallback,
        name: str | None = None,
    ):
        self.scheduler = scheduler
        self.job_id = job_id
        self.interval_sec = interval_sec
        self.callback = callback
        self.name = name or job_id
        self.generation = Generation()
        self._running = False
        self._active_token: int | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> int:
        """Schedule the loop; a no-op while it is already running."""
        if self._running:
            return self.generation.value
        token = self.generation.advance()
        self._running = True
        self.scheduler.add_job(
            self._run,
            IntervalTrigger(seconds=self.interval_sec),
            id=self.job_id,
            name=self.name,
            args=[token],
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.debug(f"[poller] {self.job_id} started (every {self.interval_sec}s, generation={token})")
        return token

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.generation.advance()
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            logger.debug(f"[poller] {self.job_id} job already gone")
        logger.debug(f"[poller] {self.job_id} stopped")

    def is_current(self, token: int) -> bool:
        return self._running and self.generation.is_current(token)

    async def tick(self) -> None:
        """Run one poll immediately, outside the timer."""
        if self._running:
            await self._run(self.generation.value)

    async def _run(self, token: int) -> None:
        # timer and manual ticks share one slot per generation
        if self._active_token == token or not self.is_current(token):
            return
        self._active_token = token
        try:
            await self.callback(token)
        finally:
            if self._active_token == token:
                self._active_token = None


class PollScheduler:
    """Owns the AsyncIOScheduler shared by every view poller."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._pollers: dict[str, Poller] = {}
        self._running = False

    def create_poller(self, job_id: str, interval_sec: float, callback: TickCallback, name: str | None = None) -> Poller:
        poller = Poller(self.scheduler, job_id, interval_sec, callback, name=name)
        self._pollers[job_id] = poller
        return poller

    def start(self) -> None:
        if self._running:
            return
        self.scheduler.start()
        self._running = True
        logger.info("Poll scheduler started")

    def shutdown(self) -> None:
        for poller in self._pollers.values():
            poller.stop()
        if not self._running:
            return
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Poll scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs
