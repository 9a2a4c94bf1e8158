from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from playwright.async_api import Page

logger = logging.getLogger(__name__)

CONSENT_SELECTORS: tuple[str, ...] = (
    'button[data-testid="uc-accept-all-button"]',
    'button[aria-label="Accept all"]',
    'button:has-text("Alle akzeptieren")',
    'button:has-text("Accept all")',
    'button:has-text("OK")',
    "#mde-consent-modal-dialog button",
    "#gdpr-consent-accept-button",
    '[class*="consent"] button',
    '[class*="cookie"] button',
)


async def dismiss_consent(
    page: Page,
    *,
    selectors: Sequence[str] = CONSENT_SELECTORS,
    timeout_ms: int = 2000,
    post_click_ms: int = 500,
) -> bool:
    """
    Click the first visible consent/cookie button, if any shows up within
    `timeout_ms`. Never raises: the page is usable with or without the banner.
    Returns True when a button was clicked.
    """
    try:
        button = page.locator(", ".join(selectors)).first
        try:
            await button.wait_for(state="visible", timeout=timeout_ms)
        except Exception:
            logger.debug("No consent modal found")
            return False

        logger.info("Found consent button, clicking")
        await button.click(timeout=timeout_ms)
        if post_click_ms > 0:
            await asyncio.sleep(post_click_ms / 1000.0)
        return True
    except Exception as e:
        logger.info("Error in consent modal handling: %s", e)
        return False
