"""
Per-listing workflow.

A task walks a strictly forward state machine:

    CREATED -> NAVIGATED -> GATED -> EXTRACTED -> EMITTED
                              +-> SKIPPED_UNAVAILABLE

with ERROR leading from any non-terminal state to FATAL_FAILED. `advance()` is
the pure transition table; `ListingTask` performs the side effects and always
returns exactly one `TaskOutcome`.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import Page, Error as PWError, TimeoutError as PWTimeoutError

from .availability import Unavailable, classify
from .consent import dismiss_consent
from .errors import InvalidTransition, NavigationError
from .extractor import extract_fields, parse_snapshot
from .fields import FIELD_SPECS, FieldSpec
from .models import SeedRecord, merge_row
from .utils import retry_async

if TYPE_CHECKING:
    from .runner import RunContext

logger = logging.getLogger(__name__)

# goto() gets the configured timeout; this is the hard ceiling on top of it
_NAV_GRACE_S = 5.0


class TaskState(str, Enum):
    CREATED = "created"
    NAVIGATED = "navigated"
    GATED = "gated"
    EXTRACTED = "extracted"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
    EMITTED = "emitted"
    FATAL_FAILED = "fatal_failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


class TaskEvent(str, Enum):
    NAVIGATION_DONE = "navigation_done"
    GATE_DONE = "gate_done"
    PAGE_UNAVAILABLE = "page_unavailable"
    EXTRACTION_DONE = "extraction_done"
    ROW_WRITTEN = "row_written"
    ERROR = "error"


_TERMINAL = frozenset({TaskState.SKIPPED_UNAVAILABLE, TaskState.EMITTED, TaskState.FATAL_FAILED})

_TRANSITIONS: Dict[Tuple[TaskState, TaskEvent], TaskState] = {
    (TaskState.CREATED, TaskEvent.NAVIGATION_DONE): TaskState.NAVIGATED,
    (TaskState.NAVIGATED, TaskEvent.GATE_DONE): TaskState.GATED,
    (TaskState.GATED, TaskEvent.PAGE_UNAVAILABLE): TaskState.SKIPPED_UNAVAILABLE,
    (TaskState.GATED, TaskEvent.EXTRACTION_DONE): TaskState.EXTRACTED,
    (TaskState.EXTRACTED, TaskEvent.ROW_WRITTEN): TaskState.EMITTED,
}


def advance(state: TaskState, event: TaskEvent) -> TaskState:
    if event is TaskEvent.ERROR and not state.terminal:
        return TaskState.FATAL_FAILED
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"{event.value} not accepted in state {state.value}") from None


class OutcomeStatus(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskOutcome:
    seed: SeedRecord
    status: OutcomeStatus
    message: str = ""
    screenshot: Optional[Path] = None
    elapsed_s: float = 0.0

    def key(self) -> Tuple[str, str, str]:
        # failure text can carry timings/addresses; compare failures by status only
        msg = "" if self.status is OutcomeStatus.FAILED else self.message
        return (self.seed.detail_url, self.status.value, msg)


class ListingTask:
    def __init__(self, ctx: "RunContext", seed: SeedRecord, *, table: Sequence[FieldSpec] = FIELD_SPECS):
        self.ctx = ctx
        self.seed = seed.normalized()
        self.table = table
        self.state = TaskState.CREATED
        self.history: List[TaskState] = [self.state]
        self._started = 0.0

    # ---------------- State machine ----------------

    def _advance(self, event: TaskEvent) -> None:
        self.state = advance(self.state, event)
        self.history.append(self.state)
        logger.debug("[%s] -> %s", self.seed.label, self.state.value)

    def _outcome(self, status: OutcomeStatus, message: str = "", screenshot: Optional[Path] = None) -> TaskOutcome:
        return TaskOutcome(
            seed=self.seed,
            status=status,
            message=message,
            screenshot=screenshot,
            elapsed_s=round(time.monotonic() - self._started, 3),
        )

    # ---------------- Steps ----------------

    async def _navigate(self, page: Page, url: str) -> None:
        cfg = self.ctx.cfg
        hard_timeout = cfg.page_load_timeout_ms / 1000.0 + _NAV_GRACE_S

        @retry_async(cfg.navigation_attempts, 1000, 5000, 300, retry_on=(PWTimeoutError, asyncio.TimeoutError))
        async def _goto() -> None:
            await asyncio.wait_for(
                page.goto(url, wait_until=cfg.navigation_wait_until, timeout=cfg.page_load_timeout_ms),
                timeout=hard_timeout,
            )

        try:
            await _goto()
        except (PWTimeoutError, asyncio.TimeoutError) as e:
            raise NavigationError(url, f"timeout after {cfg.page_load_timeout_ms}ms") from e
        except PWError as e:
            raise NavigationError(url, str(e)) from e

    async def _settle(self) -> None:
        cfg = self.ctx.cfg
        delay_ms = self.ctx.rng.uniform(cfg.settle_min_ms, cfg.settle_max_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    async def _capture_screenshot(self, page: Optional[Page]) -> Optional[Path]:
        if page is None:
            return None
        path = self.ctx.screenshot_path(self.seed)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
            return path
        except Exception as e:
            logger.warning("[%s] Screenshot capture failed: %s", self.seed.label, e)
            return None

    # ---------------- Run ----------------

    async def run(self) -> TaskOutcome:
        self._started = time.monotonic()
        cfg = self.ctx.cfg
        url = self.seed.navigation_url(cfg.listing_lang)
        logger.info("Processing: %s : %s", self.seed.car_name, url)

        try:
            async with self.ctx.browser.acquire_page() as page:
                try:
                    return await self._process(page, url)
                except Exception as e:
                    return await self._fail(e, page)
        except Exception as e:
            # acquiring or releasing the page itself failed
            return await self._fail(e, None)

    async def _process(self, page: Page, url: str) -> TaskOutcome:
        cfg = self.ctx.cfg

        await self._navigate(page, url)
        self._advance(TaskEvent.NAVIGATION_DONE)

        await dismiss_consent(page, timeout_ms=cfg.consent_timeout_ms, post_click_ms=cfg.consent_post_click_ms)
        await self._settle()

        # one snapshot feeds both the gate and the engine
        doc = parse_snapshot(await page.content())
        verdict = classify(doc, phrases=cfg.unavailable_phrases or None)
        self._advance(TaskEvent.GATE_DONE)

        if isinstance(verdict, Unavailable):
            self._advance(TaskEvent.PAGE_UNAVAILABLE)
            logger.info("Vehicle is no longer available, skipping (%s)", verdict.message)
            return self._outcome(OutcomeStatus.SKIPPED, verdict.message)

        extracted = extract_fields(doc, self.table)
        self._advance(TaskEvent.EXTRACTION_DONE)

        row = merge_row(self.seed, extracted, self.ctx.sink.headers)
        await self.ctx.sink.append(row)
        self._advance(TaskEvent.ROW_WRITTEN)
        logger.info("Data extraction complete")
        return self._outcome(OutcomeStatus.WRITTEN)

    async def _fail(self, exc: Exception, page: Optional[Page]) -> TaskOutcome:
        failed_in = self.state
        if failed_in.terminal:
            logger.warning("[%s] Error after reaching %s: %s", self.seed.label, failed_in.value, exc)
            return self._outcome(self._status_for_terminal())
        self._advance(TaskEvent.ERROR)
        logger.error("[%s] Failed in state %s: %s", self.seed.label, failed_in.value, exc)
        logger.debug("[%s] Failure details", self.seed.label, exc_info=exc)
        shot = await self._capture_screenshot(page)
        return self._outcome(OutcomeStatus.FAILED, f"{type(exc).__name__}: {exc}", shot)

    def _status_for_terminal(self) -> OutcomeStatus:
        if self.state is TaskState.EMITTED:
            return OutcomeStatus.WRITTEN
        if self.state is TaskState.SKIPPED_UNAVAILABLE:
            return OutcomeStatus.SKIPPED
        return OutcomeStatus.FAILED
