"""Fixed-size pool of stateful browser workers shared by scrape jobs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

import structlog

from ..config import BrowserCapabilities, PassConfig
from ..errors import FetchFailure, PoolDestroyed, PoolExhausted, WorkerCrashed
from .browser import PlaywrightInstance, PlaywrightScraper
from .cache import CacheNamespace


class BrowserInstance(Protocol):
    async def start(self) -> None: ...

    async def load(self, url: str, page_load_wait: float) -> str: ...

    def alive(self) -> bool: ...

    async def close(self) -> None: ...


class PageScraper(Protocol):
    async def scrape(self, instance: BrowserInstance, url: str) -> bytes: ...


class WorkerState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    DEAD = "dead"


@dataclass(slots=True)
class ScraperWorker:
    index: int
    instance: BrowserInstance
    state: WorkerState = WorkerState.IDLE
    started: bool = False
    jobs: int = 0


class ScrapePoolManager:
    """Schedule scrape jobs over ``num_instances`` reusable browser sessions.

    Jobs beyond the pool size wait for an idle worker, so callers may start
    one task per URL without an external semaphore. A worker whose browser
    dies is marked dead and never rescheduled; the pool keeps running under
    capacity and fails waiting jobs with ``PoolExhausted`` once no live
    worker remains.

    ``destroy()`` must run once after all jobs settle. Calling it again is a
    no-op; calling ``scrape()`` afterwards raises ``PoolDestroyed``.
    """

    def __init__(
        self,
        num_instances: int,
        instance_factory: Callable[[], BrowserInstance],
        scraper_factory: Callable[[], PageScraper],
        logger: structlog.BoundLogger | None = None,
        job_timeout: float | None = None,
    ) -> None:
        if num_instances < 1:
            raise ValueError("num_instances must be >= 1")
        self.num_instances = num_instances
        self.scraper_factory = scraper_factory
        self.job_timeout = job_timeout
        self.logger = logger or structlog.get_logger("idl_crawler.scrape_pool")
        self.workers: list[ScraperWorker] = [
            ScraperWorker(index=i, instance=instance_factory()) for i in range(num_instances)
        ]
        self.in_flight = 0
        self.peak_in_flight = 0
        self._available = asyncio.Condition()
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def live_workers(self) -> list[ScraperWorker]:
        return [worker for worker in self.workers if worker.state is not WorkerState.DEAD]

    async def scrape(self, url: str) -> bytes:
        worker = await self._acquire()
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        fatal = False
        try:
            await self._ensure_started(worker)
            job = self.scraper_factory().scrape(worker.instance, url)
            if self.job_timeout is None:
                return await job
            try:
                return await asyncio.wait_for(job, timeout=self.job_timeout)
            except asyncio.TimeoutError as exc:
                raise FetchFailure(url, f"timed out after {self.job_timeout:.0f}s") from exc
        except WorkerCrashed:
            fatal = True
            raise
        except Exception:
            fatal = not worker.instance.alive()
            raise
        finally:
            self.in_flight -= 1
            worker.jobs += 1
            await self._release(worker, dead=fatal)

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        async with self._available:
            self._available.notify_all()
        workers, self.workers = self.workers, []
        for worker in workers:
            if worker.started and worker.state is not WorkerState.DEAD:
                await self._close(worker)
        self.logger.info("pool_destroyed", workers=len(workers))

    # ------------------------------------------------------------------
    async def _acquire(self) -> ScraperWorker:
        async with self._available:
            while True:
                if self._destroyed:
                    raise PoolDestroyed("Scrape pool has been destroyed")
                if not self.live_workers():
                    raise PoolExhausted("All scrape workers are dead")
                for worker in self.workers:
                    if worker.state is WorkerState.IDLE:
                        worker.state = WorkerState.BUSY
                        return worker
                await self._available.wait()

    async def _release(self, worker: ScraperWorker, *, dead: bool) -> None:
        if dead:
            self.logger.error("worker_dead", worker=worker.index, jobs=worker.jobs)
            await self._close(worker)
        async with self._available:
            worker.state = WorkerState.DEAD if dead else WorkerState.IDLE
            self._available.notify_all()

    async def _ensure_started(self, worker: ScraperWorker) -> None:
        if worker.started:
            return
        try:
            await worker.instance.start()
        except Exception as exc:
            raise WorkerCrashed(f"Worker {worker.index} failed to start: {exc}") from exc
        worker.started = True

    async def _close(self, worker: ScraperWorker) -> None:
        try:
            await worker.instance.close()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("worker_close_failed", worker=worker.index, error=str(exc))


def playwright_pool(
    pass_config: PassConfig,
    capabilities: BrowserCapabilities,
    url_cache: CacheNamespace,
    logger: structlog.BoundLogger | None = None,
) -> ScrapePoolManager:
    """Build a pool of Playwright sessions configured for one scrape pass."""

    return ScrapePoolManager(
        num_instances=pass_config.num_instances,
        instance_factory=lambda: PlaywrightInstance(
            timeout=pass_config.timeout, capabilities=capabilities
        ),
        scraper_factory=lambda: PlaywrightScraper(
            page_load_wait=pass_config.page_load_wait, url_cache=url_cache, logger=logger
        ),
        logger=logger,
        job_timeout=pass_config.job_timeout,
    )


__all__ = [
    "BrowserInstance",
    "PageScraper",
    "ScrapePoolManager",
    "ScraperWorker",
    "WorkerState",
    "playwright_pool",
]
