from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Tuple
from .utils import getenv_bool, getenv_int, getenv_str, getenv_optional_str, getenv_csv

# ---------- Project Paths ----------
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
INPUT_PATH: Path = PROJECT_ROOT / "input" / "car_urls.json"
OUTPUT_DIR: Path = PROJECT_ROOT / "output"


# ---------- Config dataclass ----------
@dataclass(frozen=True)
class Config:
    # Concurrency mode
    concurrent: bool
    max_concurrent_pages: int

    # Navigation & timeouts
    page_load_timeout_ms: int
    navigation_wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"]
    navigation_attempts: int
    page_close_timeout_ms: int

    # DOM settling (randomized pause after consent handling)
    settle_min_ms: int
    settle_max_ms: int
    settle_seed: Optional[int]

    # Consent banner
    consent_timeout_ms: int
    consent_post_click_ms: int

    # Listing rendering
    listing_lang: str
    unavailable_phrases: Tuple[str, ...]

    # Browser
    headless: bool
    browser_channel: Optional[str]
    session_dir: Optional[Path]
    clear_session: bool
    user_agent: Optional[str]
    browser_locale: Optional[str]
    browser_timezone: Optional[str]

    # Paths
    input_path: Path
    output_dir: Path
    screenshots_dir: Path

    @property
    def max_in_flight(self) -> int:
        return self.max_concurrent_pages if self.concurrent else 1


# ---------- Loader ----------

NAV_WAIT_UNTIL_VALUES = ("load", "domcontentloaded", "networkidle", "commit")


def _navigation_wait_until() -> str:
    # unknown values fall back to domcontentloaded
    value = getenv_str("NAV_WAIT_UNTIL", "domcontentloaded").strip().lower()
    return value if value in NAV_WAIT_UNTIL_VALUES else "domcontentloaded"


def _listing_lang() -> str:
    # LISTING_LANG=none keeps the seed URL's own locale
    lang = getenv_str("LISTING_LANG", "en")
    return "" if lang.lower() == "none" else lang


def load_config() -> Config:
    output_dir = Path(getenv_str("OUTPUT_DIR", str(OUTPUT_DIR)))
    session_dir = getenv_optional_str("SESSION_DIR")
    settle_seed = getenv_optional_str("SETTLE_SEED")

    settle_min_ms = getenv_int("SETTLE_MIN_MS", 2000, 0, 60000)
    # max is clamped to min
    settle_max_ms = max(settle_min_ms, getenv_int("SETTLE_MAX_MS", 4000, 0, 60000))

    cfg = Config(
        concurrent=getenv_bool("CONCURRENT", True),
        max_concurrent_pages=getenv_int("MAX_CONCURRENT_PAGES", 10, 1, 64),

        page_load_timeout_ms=getenv_int("PAGE_LOAD_TIMEOUT_MS", 30000, 5000, 180000),
        navigation_wait_until=_navigation_wait_until(),
        navigation_attempts=getenv_int("NAV_ATTEMPTS", 1, 1, 5),
        page_close_timeout_ms=getenv_int("PAGE_CLOSE_TIMEOUT_MS", 1500, 100, 10000),

        settle_min_ms=settle_min_ms,
        settle_max_ms=settle_max_ms,
        settle_seed=int(settle_seed) if settle_seed and settle_seed.lstrip("-").isdigit() else None,

        consent_timeout_ms=getenv_int("CONSENT_TIMEOUT_MS", 2000, 0, 30000),
        consent_post_click_ms=getenv_int("CONSENT_POST_CLICK_MS", 500, 0, 10000),

        # "en" forces the English rendering so the English label fallbacks match
        listing_lang=_listing_lang(),
        unavailable_phrases=getenv_csv("UNAVAILABLE_PHRASES", ""),

        headless=getenv_bool("HEADLESS", True),
        browser_channel=getenv_optional_str("BROWSER_CHANNEL") or None,
        session_dir=Path(session_dir) if session_dir else None,
        clear_session=getenv_bool("CLEAR_SESSION", False),
        user_agent=getenv_optional_str("SCRAPER_USER_AGENT"),
        browser_locale=getenv_optional_str("BROWSER_LOCALE"),
        browser_timezone=getenv_optional_str("BROWSER_TIMEZONE"),

        input_path=Path(getenv_str("INPUT_PATH", str(INPUT_PATH))),
        output_dir=output_dir,
        screenshots_dir=Path(getenv_str("SCREENSHOTS_DIR", str(output_dir / "screenshots"))),
    )
    return cfg
