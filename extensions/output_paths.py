from __future__ import annotations
import time
from pathlib import Path
from typing import Optional


def ensure_output_dirs(output_dir: Path, screenshots_dir: Optional[Path] = None) -> dict[str, Path]:
    """
    Ensure the run's output folders exist.
    Returns a mapping for the csv root, logs and screenshots folders.
    """
    base = Path(output_dir)
    dirs = {
        "csv": base,
        "logs": base / "logs",
        "screenshots": Path(screenshots_dir) if screenshots_dir else base / "screenshots",
    }
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)
    return dirs


def run_stamp() -> int:
    """Epoch milliseconds; names every file produced by one run."""
    return int(time.time() * 1000)


def output_csv_path(output_dir: Path, stamp: int) -> Path:
    return Path(output_dir) / f"mobilede_output_{stamp}.csv"


def run_log_path(output_dir: Path, stamp: int) -> Path:
    return Path(output_dir) / "logs" / f"run_{stamp}.log"


def summary_path(csv_path: Path) -> Path:
    """outputs/mobilede_output_<ts>.csv -> outputs/mobilede_output_<ts>.summary.json"""
    return csv_path.with_suffix(".summary.json")
