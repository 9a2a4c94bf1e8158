from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple, Type
from urllib.parse import urlencode, urlparse, urlunparse

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

logger = logging.getLogger(__name__)

# ========== Environment helpers ==========

def getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v.strip() else default

def getenv_optional_str(name: str) -> Optional[str]:
    v = os.getenv(name)
    return v.strip() if v is not None and v.strip() else None

def getenv_int(name: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        return default
    if min_val is not None:
        val = max(min_val, val)
    if max_val is not None:
        val = min(max_val, val)
    return val

def getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}

# parse CSV-ish envs into tuples (trim blanks)
def getenv_csv(name: str, default_csv: str) -> Tuple[str, ...]:
    raw = getenv_str(name, default_csv)
    parts = [x.strip() for x in raw.split(",")]
    return tuple(p for p in parts if p)


# ========== URL helpers ==========

_LANG_QUERY_KEY = "lang"

def _query_key(segment: str) -> str:
    return segment.split("=", 1)[0].lower()

def strip_query_param(url: str, key: str = _LANG_QUERY_KEY) -> str:
    """
    Drop every occurrence of `key` from the query string. The remaining
    segments are kept byte-for-byte and in order.
    """
    parsed = urlparse(url)
    if not parsed.query:
        return url
    segments = parsed.query.split("&")
    kept = [s for s in segments if _query_key(s) != key]
    if len(kept) == len(segments):
        return url
    return urlunparse(parsed._replace(query="&".join(kept)))

def add_query_param(url: str, key: str, value: str) -> str:
    parsed = urlparse(url)
    segment = urlencode({key: value})
    query = f"{parsed.query}&{segment}" if parsed.query else segment
    return urlunparse(parsed._replace(query=query))


# ========== Text helpers ==========

def clean_text(value: Optional[str]) -> str:
    """Trim like DOM textContent.trim(); None becomes ''."""
    if not value:
        return ""
    return value.strip()

def slugify(text: str, max_len: int = 80) -> str:
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9\-_.]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text[:max_len] or "item"


# ========== Retry decorators ==========

def retry_async(
    max_attempts: int,
    initial_delay_ms: int,
    max_delay_ms: int,
    jitter_ms: int,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (TimeoutError,),
):
    def _decorator(fn: Callable[..., Awaitable]):
        @retry(
            reraise=True,
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential_jitter(
                initial=initial_delay_ms / 1000.0,
                max=max_delay_ms / 1000.0,
                jitter=jitter_ms / 1000.0,
            ),
            retry=retry_if_exception_type(retry_on),
        )
        async def wrapper(*args, **kwargs):
            return await fn(*args, **kwargs)
        return wrapper
    return _decorator


# ========== File I/O ==========

def atomic_write_text(path: Path, data: str, encoding: str = "utf-8") -> None:
    """
    Write text atomically using a NamedTemporaryFile and os.replace on the same filesystem.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding=encoding, dir=str(path.parent), delete=False) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


# ========== Playwright helpers ==========

async def try_close_page(page, timeout_ms: int = 1500) -> None:
    """
    Best-effort, bounded-time page close to avoid dangling Playwright objects
    when the event loop is under load.
    """
    if page is None:
        return
    try:
        await asyncio.wait_for(page.close(), timeout=max(0.1, (timeout_ms or 1) / 1000.0))
    except Exception as e:
        # page might already be gone
        logger.debug("Page close failed: %s", e)
