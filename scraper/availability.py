from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union

from bs4 import BeautifulSoup

from .utils import clean_text

logger = logging.getLogger(__name__)

# Dedicated error box rendered instead of the listing when it was removed
UNAVAILABLE_MARKER = '[data-testid="vip-error-message"]'

# Checked in order, first contained phrase wins (case-sensitive, German + English renderings)
UNAVAILABLE_PHRASES: tuple[str, ...] = (
    "Dieses Fahrzeug ist nicht mehr verfügbar",
    "This Vehicle is not available anymore",
    "nicht mehr verfügbar",
    "nicht verfügbar",
    "not available",
    "sold",
    "verkauft",
)


@dataclass(frozen=True)
class Available:
    available = True


@dataclass(frozen=True)
class Unavailable:
    message: str
    available = False

    def as_result(self) -> Dict[str, str]:
        return {"status": "unavailable", "message": self.message}


Availability = Union[Available, Unavailable]


def body_text(doc: BeautifulSoup) -> str:
    """Visible text of the body; script, style and template strings are not part of it."""
    root = doc.body if doc.body is not None else doc
    return root.get_text()


def classify(
    doc: BeautifulSoup,
    *,
    marker: str = UNAVAILABLE_MARKER,
    phrases: Optional[Sequence[str]] = None,
) -> Availability:
    """
    Decide whether a rendered detail page still shows a listing.

    The marker element is authoritative. Phrase matching over the body text is
    the fallback for layouts that show the notice without the marker.
    """
    el = doc.select_one(marker)
    if el is not None:
        message = clean_text(el.get_text())
        logger.debug("Unavailable marker present: %r", message)
        return Unavailable(message)

    text = body_text(doc)
    for phrase in (phrases or UNAVAILABLE_PHRASES):
        if phrase and phrase in text:
            logger.debug("Unavailable phrase matched: %r", phrase)
            return Unavailable(phrase)

    return Available()
