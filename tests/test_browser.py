import asyncio
from dataclasses import replace

import pytest

import scraper.browser as browser_mod
from scraper.browser import BrowserSession, _context_options, clear_session_dir
from scraper.config import load_config


@pytest.fixture
def cfg(monkeypatch, tmp_path):
    for k in ("HEADLESS", "SESSION_DIR", "BROWSER_CHANNEL", "SCRAPER_USER_AGENT", "BROWSER_LOCALE", "BROWSER_TIMEZONE"):
        monkeypatch.delenv(k, raising=False)
    return replace(load_config(), output_dir=tmp_path, max_concurrent_pages=2, page_close_timeout_ms=200)


class StubPage:
    def __init__(self):
        self.closed = False

    async def close(self):
        # mark closed
        self.closed = True


class StubContext:
    def __init__(self):
        self.closed = False
        self._default_timeout = None
        self._default_navigation_timeout = None
        self._pages = []
        self._new_page_raises = None

    def set_default_timeout(self, ms):
        self._default_timeout = ms

    def set_default_navigation_timeout(self, ms):
        self._default_navigation_timeout = ms

    async def new_page(self):
        if self._new_page_raises:
            raise self._new_page_raises
        p = StubPage()
        self._pages.append(p)
        return p

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


class StubBrowser:
    def __init__(self, context):
        self.context = context
        self.closed = False
        self._context_kwargs = None

    async def new_context(self, **kwargs):
        self._context_kwargs = kwargs
        return self.context

    async def close(self):
        self.closed = True


class StubChromium:
    def __init__(self, browser):
        self.browser = browser
        self._launch_kwargs = None
        self._persistent_args = None

    async def launch(self, **kwargs):
        self._launch_kwargs = kwargs
        return self.browser

    async def launch_persistent_context(self, user_data_dir, **kwargs):
        self._persistent_args = (user_data_dir, kwargs)
        return self.browser.context


class StubPlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


class AsyncPlaywrightFactory:
    def __init__(self, pw):
        self._pw = pw

    async def start(self):
        return self._pw


def _install_stubs(monkeypatch):
    context = StubContext()
    browser = StubBrowser(context=context)
    chromium = StubChromium(browser=browser)
    pw = StubPlaywright(chromium=chromium)
    monkeypatch.setattr(browser_mod, "async_playwright", lambda: AsyncPlaywrightFactory(pw))
    return pw, chromium, browser, context


@pytest.mark.asyncio
async def test_launch_non_persistent(monkeypatch, cfg):
    pw, chromium, browser, context = _install_stubs(monkeypatch)

    session = await BrowserSession.launch(cfg)

    assert session.context is context
    assert session.browser is browser
    assert chromium._launch_kwargs["headless"] is True
    assert "channel" not in chromium._launch_kwargs
    assert chromium._persistent_args is None

    # default timeouts applied
    assert context._default_timeout == cfg.page_load_timeout_ms
    assert context._default_navigation_timeout == cfg.page_load_timeout_ms

    # no custom headers unless configured
    assert "user_agent" not in browser._context_kwargs

    await session.close()
    assert context.closed is True
    assert browser.closed is True
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_launch_persistent_with_channel(monkeypatch, cfg, tmp_path):
    pw, chromium, browser, context = _install_stubs(monkeypatch)
    cfg = replace(cfg, session_dir=tmp_path / "profile", browser_channel="chrome", headless=False)

    session = await BrowserSession.launch(cfg)

    user_data_dir, kwargs = chromium._persistent_args
    assert user_data_dir == str(tmp_path / "profile")
    assert kwargs["channel"] == "chrome"
    assert kwargs["headless"] is False
    assert kwargs["viewport"] is None
    assert (tmp_path / "profile").is_dir()
    assert session.browser is None

    await session.close()
    assert context.closed is True
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_launch_failure_stops_playwright(monkeypatch, cfg):
    pw, chromium, browser, context = _install_stubs(monkeypatch)

    async def boom(**kwargs):
        raise RuntimeError("no chrome")

    chromium.launch = boom
    with pytest.raises(RuntimeError):
        await BrowserSession.launch(cfg)
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_acquire_page_closes_and_releases_on_error(cfg):
    context = StubContext()
    session = BrowserSession(cfg, StubPlaywright(None), context, max_pages=1)

    with pytest.raises(ValueError):
        async with session.acquire_page() as page:
            assert session.open_pages == 1
            raise ValueError("task blew up")

    assert page.closed is True
    assert session.open_pages == 0

    # slot was released: a second acquire does not block
    async with session.acquire_page() as page2:
        assert page2 is not page
    assert session.pages_opened == 2


@pytest.mark.asyncio
async def test_acquire_page_bounds_open_pages(cfg):
    context = StubContext()
    session = BrowserSession(cfg, StubPlaywright(None), context, max_pages=2)
    peak = 0

    async def worker():
        nonlocal peak
        async with session.acquire_page():
            peak = max(peak, session.open_pages)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(worker() for _ in range(6)))
    assert peak == 2
    assert session.open_pages == 0
    assert all(p.closed for p in context._pages)


@pytest.mark.asyncio
async def test_acquire_page_releases_slot_when_new_page_fails(cfg):
    context = StubContext()
    context._new_page_raises = RuntimeError("context gone")
    session = BrowserSession(cfg, StubPlaywright(None), context, max_pages=1)

    with pytest.raises(RuntimeError):
        async with session.acquire_page():
            pass

    context._new_page_raises = None
    async with session.acquire_page() as page:
        assert page is not None


def test_context_options_only_set_configured_identity(cfg):
    assert set(_context_options(cfg)) == {"viewport"}
    cfg = replace(cfg, user_agent="UA/1.0", browser_locale="de-DE", browser_timezone="Europe/Berlin")
    opts = _context_options(cfg)
    assert opts["user_agent"] == "UA/1.0"
    assert opts["locale"] == "de-DE"
    assert opts["timezone_id"] == "Europe/Berlin"


def test_clear_session_dir(cfg, tmp_path):
    profile = tmp_path / "profile"
    (profile / "Default").mkdir(parents=True)
    clear_session_dir(replace(cfg, session_dir=profile))
    assert not profile.exists()
    # no session dir configured: nothing to do
    clear_session_dir(replace(cfg, session_dir=None))
