from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from scraper.models import SEED_COLUMNS, SeedRecord
from scraper.utils import clean_text

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _to_seed(row: Mapping[str, Any]) -> Optional[SeedRecord]:
    values = {k: _as_str(v) for k, v in row.items() if k is not None}
    if not clean_text(values.get("detail_url")):
        return None
    extra = {k: v for k, v in values.items() if k not in SEED_COLUMNS}
    return SeedRecord(
        car_name=clean_text(values.get("car_name")),
        price=clean_text(values.get("price")),
        maker=clean_text(values.get("maker")),
        image=clean_text(values.get("image")),
        detail_url=clean_text(values.get("detail_url")),
        extra=extra,
    )


def _iter_json_rows(path: Path, *, encoding: str) -> Iterable[Mapping[str, Any]]:
    data = json.loads(path.read_text(encoding=encoding))
    if isinstance(data, dict):
        # tolerate {"cars": [...]}-style wrappers
        data = next((v for v in data.values() if isinstance(v, list)), [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of listing objects")
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("%s: entry %d is not an object, skipping", path.name, i)
            continue
        yield item


def _iter_csv_rows(path: Path, *, encoding: str) -> Iterable[Mapping[str, Any]]:
    with path.open("r", encoding=encoding, newline="") as f:
        yield from csv.DictReader(f)


def _dedupe_seeds(seeds: Iterable[SeedRecord]) -> List[SeedRecord]:
    """Drop repeated listings, comparing detail URLs with the `lang` parameter removed."""
    seen: Set[str] = set()
    out: List[SeedRecord] = []
    for s in seeds:
        key = s.normalized().detail_url.lower()
        if key in seen:
            logger.debug("Duplicate seed dropped: %s", s.detail_url)
            continue
        seen.add(key)
        out.append(s)
    return out


def load_seeds(
    path: Path,
    *,
    limit: Optional[int] = None,
    dedupe: bool = True,
    encoding: str = "utf-8",
) -> List[SeedRecord]:
    """
    Load seed records from a JSON array (the search-page scrape output) or a
    CSV file with a header row.

    Args:
        path: `.json` or `.csv` file.
        limit: keep at most this many seeds (applied after dedupe).
        dedupe: drop repeated detail URLs, keeping the first occurrence.
        encoding: file encoding.

    Returns:
        List[SeedRecord] in file order.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        rows = _iter_json_rows(path, encoding=encoding)
    elif suffix == ".csv":
        rows = _iter_csv_rows(path, encoding=encoding)
    else:
        raise ValueError(f"Unsupported seed file type '{path.suffix}' (expected .json or .csv)")

    seeds: List[SeedRecord] = []
    skipped = 0
    for row in rows:
        seed = _to_seed(row)
        if seed is None:
            skipped += 1
            continue
        seeds.append(seed)

    if skipped:
        logger.warning("Skipped %d seed row(s) without detail_url in %s", skipped, path.name)
    if dedupe:
        seeds = _dedupe_seeds(seeds)
    if limit is not None:
        seeds = seeds[: max(0, limit)]

    logger.info("Loaded %d seed(s) from %s", len(seeds), path)
    return seeds


def seeds_summary(seeds: Iterable[SeedRecord]) -> Dict[str, int]:
    """Listing count per maker, for the start-of-run log line."""
    counts: Dict[str, int] = {}
    for s in seeds:
        counts[s.maker or "unknown"] = counts.get(s.maker or "unknown", 0) + 1
    return counts
