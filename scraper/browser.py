from __future__ import annotations

import asyncio
import logging
import shutil
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright, Page, Error as PWError

from .config import Config
from .utils import try_close_page

logger = logging.getLogger(__name__)

# Benign/expected aborts we don't want to spam logs for
_SILENCE_PATTERNS = (
    "net::ERR_ABORTED",
    "frame was detached",
    "Target closed",
    "Target page, context or browser has been closed",
    "Execution context was destroyed",
    "Navigation failed because page was closed",
    "TargetClosedError",
)


def _browser_args(cfg: Config) -> list[str]:
    args: list[str] = [
        "--disable-dev-shm-usage",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-features=TranslateUI",
    ]
    if cfg.headless:
        args.append("--headless=new")
    return args


def _context_options(cfg: Config) -> dict:
    opts: dict = {
        # viewport=None: the window size drives the layout when headful
        "viewport": None if not cfg.headless else {"width": 1920, "height": 1080},
    }
    if cfg.user_agent:
        opts["user_agent"] = cfg.user_agent
    if cfg.browser_locale:
        opts["locale"] = cfg.browser_locale
    if cfg.browser_timezone:
        opts["timezone_id"] = cfg.browser_timezone
    return opts


def clear_session_dir(cfg: Config) -> None:
    """Wipe the persistent profile (cookies, consent state) before a run."""
    if cfg.session_dir is None:
        return
    if cfg.session_dir.exists():
        logger.info("Clearing browser session at %s", cfg.session_dir)
        shutil.rmtree(cfg.session_dir, ignore_errors=True)


class BrowserSession:
    """
    One long-lived browser context shared by every listing task. Pages are
    handed out through `acquire_page()`, which bounds how many are open at once.
    """

    def __init__(
        self,
        cfg: Config,
        playwright: Playwright,
        context: BrowserContext,
        browser: Optional[Browser] = None,
        *,
        max_pages: Optional[int] = None,
    ):
        self.cfg = cfg
        self.playwright = playwright
        self.context = context
        self.browser = browser
        self.max_pages = max_pages or cfg.max_in_flight
        self._sem = asyncio.Semaphore(self.max_pages)
        self.open_pages = 0
        self.pages_opened = 0
        self._old_ex_handler = None

    # ---------------- Lifecycle ----------------

    @classmethod
    async def launch(cls, cfg: Config) -> "BrowserSession":
        pw = await async_playwright().start()
        launch_opts: dict = {
            "headless": cfg.headless,
            "args": _browser_args(cfg),
        }
        if cfg.browser_channel:
            launch_opts["channel"] = cfg.browser_channel

        browser: Optional[Browser] = None
        try:
            if cfg.session_dir is not None:
                # persistent profile keeps the consent cookie between runs
                cfg.session_dir.mkdir(parents=True, exist_ok=True)
                context = await pw.chromium.launch_persistent_context(
                    str(cfg.session_dir), **launch_opts, **_context_options(cfg)
                )
            else:
                browser = await pw.chromium.launch(**launch_opts)
                context = await browser.new_context(**_context_options(cfg))
        except Exception:
            await pw.stop()
            raise

        context.set_default_timeout(cfg.page_load_timeout_ms)
        context.set_default_navigation_timeout(cfg.page_load_timeout_ms)

        session = cls(cfg, pw, context, browser)
        session._install_loop_exception_silencer()
        logger.info(
            "Browser initialized headless=%s channel=%s persistent=%s max_pages=%d",
            cfg.headless,
            cfg.browser_channel or "chromium",
            cfg.session_dir is not None,
            session.max_pages,
        )
        return session

    async def close(self) -> None:
        try:
            await self.context.close()
        except Exception as e:
            logger.warning("Error while closing context: %s", e)

        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception as e:
                logger.warning("Error while closing browser: %s", e)

        try:
            await self.playwright.stop()
        except Exception as e:
            logger.warning("Error while stopping Playwright: %s", e)

        self._restore_loop_exception_handler()
        logger.info("Browser closed after %d page(s)", self.pages_opened)

    # ---------------- Page pool ----------------

    @asynccontextmanager
    async def acquire_page(self) -> AsyncIterator[Page]:
        """
        Open a fresh page for one listing. The page is closed and its slot
        released on every exit path.
        """
        await self._sem.acquire()
        page: Optional[Page] = None
        try:
            if hasattr(self.context, "is_closed") and self.context.is_closed():
                raise PWError("Context is closed")
            page = await self.context.new_page()
            self.open_pages += 1
            self.pages_opened += 1
            try:
                yield page
            finally:
                self.open_pages -= 1
                await try_close_page(page, self.cfg.page_close_timeout_ms)
        finally:
            self._sem.release()

    # ---------------- Loop noise ----------------

    def _install_loop_exception_silencer(self) -> None:
        """
        Suppress loop-level 'Future exception was never retrieved' noise from
        pages closed while Playwright still had requests in flight.
        """
        loop = asyncio.get_running_loop()
        prev = loop.get_exception_handler()
        self._old_ex_handler = prev

        def _handler(_loop, context: dict):
            exc = context.get("exception")
            text = f"{exc!r}" if exc else context.get("message", "")
            if text and any(p in text for p in _SILENCE_PATTERNS):
                logger.debug("Suppressed loop exception: %s", text)
                return
            if prev:
                prev(_loop, context)
            else:
                _loop.default_exception_handler(context)

        loop.set_exception_handler(_handler)

    def _restore_loop_exception_handler(self) -> None:
        try:
            asyncio.get_running_loop().set_exception_handler(self._old_ex_handler)
        except RuntimeError:
            pass
