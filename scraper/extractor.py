from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from .fields import (
    FIELD_SPECS,
    AttrJoin,
    Composite,
    FieldSpec,
    LabelLookup,
    ListJoin,
    ParentText,
    SiblingText,
    Strategy,
    Text,
)
from .utils import clean_text

logger = logging.getLogger(__name__)


def parse_snapshot(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


# ---------- DOM reads (never raise on missing elements) ----------

def _text(el: Optional[Tag]) -> str:
    return clean_text(el.get_text()) if el is not None else ""


def _next_element(el: Optional[Tag]) -> Optional[Tag]:
    # nextElementSibling: skip whitespace/text nodes, stop at the first tag
    if el is None:
        return None
    return el.find_next_sibling()


def _attr_value(el: Tag, attrs: Sequence[str]) -> str:
    for name in attrs:
        v = el.get(name)
        if isinstance(v, list):
            v = " ".join(v)
        if v:
            return v
    return ""


def find_by_label(doc: BeautifulSoup, strategy: LabelLookup) -> str:
    """
    Scan label elements in document order; the first whose trimmed text equals
    an accepted label (case-insensitive) and is directly followed by a value
    element provides the value. Accepted labels are tried in declared order.
    """
    labels = doc.find_all(strategy.label_tag)
    if not labels:
        return ""
    texts = [_text(el).lower() for el in labels]
    for wanted in strategy.labels:
        key = wanted.strip().lower()
        for el, text in zip(labels, texts):
            if text != key:
                continue
            value = _next_element(el)
            if value is not None and value.name == strategy.value_tag:
                found = _text(value)
                if found:
                    return found
                break
    return ""


def resolve_strategy(doc: BeautifulSoup, strategy: Strategy) -> str:
    if isinstance(strategy, Text):
        return _text(doc.select_one(strategy.selector))

    if isinstance(strategy, SiblingText):
        return _text(_next_element(doc.select_one(strategy.selector)))

    if isinstance(strategy, ListJoin):
        return strategy.delimiter.join(_text(el) for el in doc.select(strategy.selector))

    if isinstance(strategy, AttrJoin):
        return strategy.delimiter.join(_attr_value(el, strategy.attrs) for el in doc.select(strategy.selector))

    if isinstance(strategy, Composite):
        first = _text(doc.select_one(strategy.first))
        second = _text(doc.select_one(strategy.second))
        return f"{first} {second}".strip()

    if isinstance(strategy, ParentText):
        anchor = doc.select_one(strategy.selector)
        parent = anchor.parent if anchor is not None else None
        if not isinstance(parent, Tag):
            return ""
        return _text(parent.select_one(strategy.child_selector))

    if isinstance(strategy, LabelLookup):
        return find_by_label(doc, strategy)

    raise TypeError(f"unknown strategy: {strategy!r}")


def resolve_field(doc: BeautifulSoup, spec: FieldSpec) -> str:
    for strategy in spec.strategies:
        value = clean_text(resolve_strategy(doc, strategy))
        if value:
            return value
    return ""


def extract_fields(doc: BeautifulSoup, table: Sequence[FieldSpec] = FIELD_SPECS) -> Dict[str, str]:
    """Resolve every field of `table` against one page snapshot."""
    result = {spec.name: resolve_field(doc, spec) for spec in table}
    filled = sum(1 for v in result.values() if v)
    logger.debug("Extracted %d/%d fields", filled, len(result))
    return result
