"""
Fixed-interval asyncio job scheduler

Each named job runs in its own background task with its own shutdown event,
so the probe cadence and the SLA evaluation cycle can be started and stopped
independently.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.interfaces import IScheduler, JobCallback


@dataclass
class _Job:
    name: str
    interval_seconds: float
    callback: JobCallback
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    runs: int = 0
    errors: int = 0


class AsyncIntervalScheduler(IScheduler):
    """Runs coroutine callbacks every ``interval_seconds`` until cancelled.

    A tick that raises is logged and counted; the job keeps running. The wait
    between ticks is interruptible so cancel() returns promptly.
    """

    def __init__(self, stop_timeout_seconds: float = 10.0):
        self.logger = get_logger(__name__)
        self.stop_timeout_seconds = stop_timeout_seconds
        self._jobs: Dict[str, _Job] = {}

    def schedule(self, name: str, interval_seconds: float, callback: JobCallback) -> None:
        existing = self._jobs.get(name)
        if existing and existing.task and not existing.task.done():
            self.logger.warning("job_already_running", job=name)
            return

        job = _Job(name=name, interval_seconds=interval_seconds, callback=callback)
        job.task = asyncio.create_task(self._run(job))
        self._jobs[name] = job
        self.logger.info("job_scheduled", job=name, interval_seconds=interval_seconds)

    def is_running(self, name: str) -> bool:
        job = self._jobs.get(name)
        return bool(job and job.task and not job.task.done())

    async def cancel(self, name: str) -> None:
        job = self._jobs.pop(name, None)
        if job is None or job.task is None or job.task.done():
            return

        job.shutdown_event.set()
        try:
            await asyncio.wait_for(job.task, timeout=self.stop_timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.warning("job_stop_timed_out", job=name)
            job.task.cancel()
        self.logger.info("job_stopped", job=name, runs=job.runs, errors=job.errors)

    async def shutdown(self) -> None:
        for name in list(self._jobs):
            await self.cancel(name)

    async def _run(self, job: _Job) -> None:
        while not job.shutdown_event.is_set():
            try:
                await job.callback()
                job.runs += 1
            except Exception as e:
                job.errors += 1
                self.logger.error("job_tick_failed", job=job.name, error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(job.shutdown_event.wait(), timeout=job.interval_seconds)
            except asyncio.TimeoutError:
                pass
