"""
Poll scheduler.

Fires one watch cycle per repository on every tick of a fixed interval. The
cycles of a tick run concurrently as tracked asyncio tasks, bounded by a
semaphore, and a per-tick summary is logged once they all finish. Stopping
the scheduler ends the ticking, gives in-flight cycles a grace period and
cancels whatever is still running after it.
"""

import asyncio
from typing import List, Optional, Sequence, Set

from gitgrope.constants import (
    DEFAULT_MAX_CONCURRENT_REPOS,
    DEFAULT_POLL_SECONDS,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
    FAILURE_OUTCOMES,
    OUTCOME_BUSY,
    OUTCOME_ERROR,
    OUTCOME_RECORDED,
)
from gitgrope.log_utils import logger

from .models import CycleResult
from .watcher import RepositoryWatcher


class Scheduler:
    """Runs repository watchers on a fixed polling interval."""

    def __init__(
        self,
        watchers: Sequence[RepositoryWatcher],
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_REPOS,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        fire_once: bool = False,
    ):
        self.watchers = list(watchers)
        self.poll_seconds = poll_seconds
        self.shutdown_grace = shutdown_grace
        self.fire_once = fire_once
        self.ticks = 0
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._stop: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._cycles: Set[asyncio.Task] = set()
        self._claimed: Set[RepositoryWatcher] = set()
        self._summaries: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._cycles)

    def request_stop(self) -> None:
        """Ask the scheduler to stop ticking and shut down."""
        self._stop_requested = True
        if self._stop is not None:
            self._stop.set()

    async def _reject_busy(self, watcher: RepositoryWatcher) -> CycleResult:
        name = watcher.repository.name
        logger.warning(f"{name}: previous cycle still running, skipping this tick")
        return CycleResult(repository=name, outcome=OUTCOME_BUSY)

    async def _run_cycle(self, watcher: RepositoryWatcher) -> CycleResult:
        name = watcher.repository.name
        async with self._semaphore:
            try:
                return await watcher.poll()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"{name}: unexpected error during watch cycle")
                return CycleResult(
                    repository=name, outcome=OUTCOME_ERROR, error_message=str(e)
                )

    def tick(self) -> List["asyncio.Task[CycleResult]"]:
        """
        Launch one watch cycle per repository.

        Returns:
            List[asyncio.Task]: The cycle tasks started by this tick.
        """
        self.ticks += 1
        tick_number = self.ticks
        logger.debug(f"Tick {tick_number}: polling {len(self.watchers)} repositories")

        tasks = []
        for watcher in self.watchers:
            name = f"gitgrope:{watcher.repository.name}:{tick_number}"
            if watcher in self._claimed:
                # Previous cycle still running or queued for a slot
                tasks.append(asyncio.create_task(self._reject_busy(watcher), name=name))
                continue

            self._claimed.add(watcher)
            task = asyncio.create_task(self._run_cycle(watcher), name=name)
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            task.add_done_callback(
                lambda _task, claimed=watcher: self._claimed.discard(claimed)
            )
            tasks.append(task)

        summary = asyncio.create_task(self._summarize(tick_number, tasks))
        self._summaries.add(summary)
        summary.add_done_callback(self._summaries.discard)
        return tasks

    async def _summarize(
        self, tick_number: int, tasks: Sequence["asyncio.Task[CycleResult]"]
    ) -> List[CycleResult]:
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        results = [r for r in outcomes if isinstance(r, CycleResult)]
        recorded = sum(1 for r in results if r.outcome == OUTCOME_RECORDED)
        failed = sum(1 for r in results if r.outcome in FAILURE_OUTCOMES)
        cancelled = len(outcomes) - len(results)
        unchanged = len(results) - recorded - failed
        message = (
            f"Tick {tick_number} complete: {recorded} recorded, "
            f"{failed} failed, {unchanged} unchanged"
        )
        if cancelled:
            message += f", {cancelled} cancelled"
        logger.info(message)
        return results

    async def run_once(self) -> List[CycleResult]:
        """Run a single tick and wait for every cycle it started."""
        outcomes = await asyncio.gather(*self.tick(), return_exceptions=True)
        return [r for r in outcomes if isinstance(r, CycleResult)]

    async def _run_until_done_or_stopped(
        self, tasks: Sequence["asyncio.Task[CycleResult]"]
    ) -> None:
        cycles = asyncio.gather(*tasks, return_exceptions=True)
        stopped = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({cycles, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()

    async def run(self) -> None:
        """
        Tick until stopped, then shut down gracefully.

        The first tick fires immediately. In fire-once mode the scheduler
        returns after that tick's cycles have all finished, or earlier when
        stopped, in which case shutdown applies the grace period.
        """
        self._stop = asyncio.Event()
        if self._stop_requested:
            self._stop.set()

        try:
            if self.fire_once:
                if not self._stop.is_set():
                    await self._run_until_done_or_stopped(self.tick())
                return

            while not self._stop.is_set():
                self.tick()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.poll_seconds)
                except asyncio.TimeoutError:
                    continue
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """
        Stop ticking and wait for in-flight cycles.

        Cycles still running after the grace period are cancelled; a cancelled
        cycle kills its running task process.
        """
        self.request_stop()
        pending = set(self._cycles)
        if pending:
            logger.info(
                f"Waiting up to {self.shutdown_grace}s for {len(pending)} running cycles to end..."
            )
            _, pending = await asyncio.wait(pending, timeout=self.shutdown_grace)
        if pending:
            logger.warning(f"Cancelling {len(pending)} unfinished cycles")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        if self._summaries:
            await asyncio.gather(*self._summaries, return_exceptions=True)
