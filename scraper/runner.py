from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from .browser import BrowserSession, clear_session_dir
from .config import Config
from .models import SeedRecord
from .task import ListingTask, OutcomeStatus, TaskOutcome
from .utils import slugify

if TYPE_CHECKING:
    from components.csv_sink import CsvSink

logger = logging.getLogger(__name__)

TaskFn = Callable[[SeedRecord], Awaitable[TaskOutcome]]


@dataclass
class RunContext:
    """
    Everything a listing task may touch, created once per run: config, the
    shared browser session, the sink and the screenshot directory.
    """
    cfg: Config
    browser: BrowserSession
    sink: "CsvSink"
    screenshots_dir: Path
    rng: random.Random = field(default_factory=random.Random)

    def screenshot_path(self, seed: SeedRecord) -> Path:
        stamp = int(time.time() * 1000)
        return self.screenshots_dir / f"fatal_error_{slugify(seed.car_name or 'listing')}_{stamp}.png"

    @classmethod
    @asynccontextmanager
    async def open(cls, cfg: Config, sink: "CsvSink") -> AsyncIterator["RunContext"]:
        if cfg.clear_session:
            clear_session_dir(cfg)
        browser = await BrowserSession.launch(cfg)
        ctx = cls(
            cfg=cfg,
            browser=browser,
            sink=sink,
            screenshots_dir=cfg.screenshots_dir,
            rng=random.Random(cfg.settle_seed),
        )
        try:
            yield ctx
        finally:
            await browser.close()


async def _guarded(seed: SeedRecord, task_fn: TaskFn) -> TaskOutcome:
    try:
        return await task_fn(seed)
    except Exception as e:
        # last resort; ListingTask.run() already turns its own errors into FAILED outcomes
        logger.error("Task for %s raised: %s", seed.detail_url, e, exc_info=True)
        return TaskOutcome(seed=seed, status=OutcomeStatus.FAILED, message=f"{type(e).__name__}: {e}")


async def run_tasks(seeds: Sequence[SeedRecord], max_in_flight: int, task_fn: TaskFn) -> List[TaskOutcome]:
    """
    Run one task per seed with at most `max_in_flight` in progress. A finished
    task frees its slot for the next seed immediately. Outcomes come back in
    seed order.
    """
    if max_in_flight < 1:
        raise ValueError("max_in_flight must be >= 1")

    sem = asyncio.Semaphore(max_in_flight)

    async def _runner(seed: SeedRecord) -> TaskOutcome:
        async with sem:
            return await _guarded(seed, task_fn)

    tasks = [asyncio.create_task(_runner(s), name=f"listing-{i}") for i, s in enumerate(seeds)]
    return list(await asyncio.gather(*tasks))


async def run_sequential(seeds: Sequence[SeedRecord], task_fn: TaskFn) -> List[TaskOutcome]:
    outcomes: List[TaskOutcome] = []
    for seed in seeds:
        outcomes.append(await _guarded(seed, task_fn))
    return outcomes


async def run_listings(
    ctx: RunContext,
    seeds: Sequence[SeedRecord],
    *,
    task_fn: Optional[TaskFn] = None,
) -> List[TaskOutcome]:
    if task_fn is None:
        async def task_fn(seed: SeedRecord) -> TaskOutcome:
            return await ListingTask(ctx, seed).run()

    cfg = ctx.cfg
    if cfg.concurrent:
        logger.info("Processing mode: CONCURRENT (max %d pages)", cfg.max_concurrent_pages)
        return await run_tasks(seeds, cfg.max_concurrent_pages, task_fn)

    logger.info("Processing mode: SEQUENTIAL")
    return await run_sequential(seeds, task_fn)
