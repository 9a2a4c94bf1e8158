from __future__ import annotations
import asyncio
import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from scraper.task import OutcomeStatus, TaskOutcome
from scraper.utils import atomic_write_text

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunSummary:
    """
    Aggregates task outcomes for one run.
    Stored next to the CSV as <csv stem>.summary.json
    """

    def __init__(self, total: int = 0, *, output_csv: Optional[Path] = None):
        self.output_csv = output_csv
        self.data: Dict[str, Any] = {
            "started_at": _now(),
            "finished_at": None,
            "output_csv": str(output_csv) if output_csv else None,
            "seeds_total": total,
            "written": 0,
            "skipped": 0,
            "failed": 0,
            "skipped_listings": [],
            "failures": [],
        }
        self._lock = asyncio.Lock()

    # ---------------------- Core methods ----------------------

    def record(self, outcome: TaskOutcome) -> None:
        status = outcome.status
        self.data[status.value] += 1
        if status is OutcomeStatus.SKIPPED:
            self.data["skipped_listings"].append({
                "url": outcome.seed.detail_url,
                "message": outcome.message,
            })
        elif status is OutcomeStatus.FAILED:
            self.data["failures"].append({
                "url": outcome.seed.detail_url,
                "car_name": outcome.seed.car_name,
                "reason": outcome.message,
                "screenshot": str(outcome.screenshot) if outcome.screenshot else None,
            })

    def record_all(self, outcomes: Iterable[TaskOutcome]) -> "RunSummary":
        for o in outcomes:
            self.record(o)
        return self

    def mark_finished(self) -> None:
        self.data["finished_at"] = _now()

    async def save(self, path: Path) -> None:
        """Persist the summary to disk."""
        async with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                atomic_write_text(path, json.dumps(self.data, indent=2, ensure_ascii=False))
                logger.info("Run summary saved to %s", path)
            except OSError as e:
                logger.error("Run summary save failed for %s: %s", path, e)

    # ---------------------- Convenience accessors ----------------------

    def counts(self) -> Dict[str, int]:
        return {s.value: self.data[s.value] for s in OutcomeStatus}

    @property
    def processed(self) -> int:
        return sum(self.counts().values())

    def log(self) -> None:
        c = self.counts()
        logger.info(
            "Run finished: %d written, %d skipped (unavailable), %d failed of %d seed(s)",
            c["written"], c["skipped"], c["failed"], self.data["seeds_total"],
        )
        reasons = Counter(f["reason"].split(":", 1)[0] for f in self.data["failures"])
        for reason, n in reasons.most_common():
            logger.info("  %s x%d", reason, n)
        if self.output_csv:
            logger.info("Data saved to %s", self.output_csv)
