from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

# Local modules
from components.csv_sink import CsvSink
from components.seed_loader import load_seeds, seeds_summary

from extensions.logging import LoggingExtension
from extensions.output_paths import ensure_output_dirs, output_csv_path, run_log_path, run_stamp, summary_path
from extensions.run_summary import RunSummary

from scraper.config import Config, load_config
from scraper.errors import SinkError
from scraper.fields import HEADERS
from scraper.models import SeedRecord
from scraper.runner import RunContext, run_listings
from scraper.task import ListingTask, TaskOutcome


# ----------------------------
# CLI parsing
# ----------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Visit mobile.de listing detail pages and write one CSV row per available vehicle"
    )

    p.add_argument("--input", type=Path, default=None, help="Seed file (.json or .csv); default from INPUT_PATH")
    p.add_argument("--output-dir", type=Path, default=None, help="Directory for the CSV, logs and screenshots")
    p.add_argument("--limit", type=int, default=None, help="Optional limit of seeds (applied after dedupe)")
    p.add_argument("--no-dedupe", dest="dedupe", action="store_false", help="Keep repeated detail URLs")

    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--sequential", dest="concurrent", action="store_false", default=None, help="One listing at a time")
    mode.add_argument("--concurrent", dest="concurrent", action="store_true", default=None, help="Bounded parallel listings (default)")
    p.add_argument("--max-concurrent", type=int, default=None, help="Max listing pages open at once")

    # Browser
    p.add_argument("--headful", action="store_true", help="Show the browser window")
    p.add_argument("--channel", type=str, default=None, help="Browser channel, e.g. 'chrome' (default: bundled chromium)")
    p.add_argument("--session-dir", type=Path, default=None, help="Persistent browser profile directory")
    p.add_argument("--clear-session", action="store_true", help="Wipe the persistent profile before starting")

    # Logging
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Console/file log level")
    p.add_argument("--no-log-file", action="store_true", help="Console logging only")
    return p.parse_args(argv)


def _apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    changes = {}
    if args.input is not None:
        changes["input_path"] = args.input
    if args.output_dir is not None:
        changes["output_dir"] = args.output_dir
        changes["screenshots_dir"] = args.output_dir / "screenshots"
    if args.concurrent is not None:
        changes["concurrent"] = args.concurrent
    if args.max_concurrent is not None:
        if args.max_concurrent < 1:
            raise SystemExit("--max-concurrent must be >= 1")
        changes["max_concurrent_pages"] = args.max_concurrent
    if args.headful:
        changes["headless"] = False
    if args.channel:
        changes["browser_channel"] = args.channel
    if args.session_dir is not None:
        changes["session_dir"] = args.session_dir
    if args.clear_session:
        changes["clear_session"] = True
    return replace(cfg, **changes) if changes else cfg


# ----------------------------
# Run
# ----------------------------

async def scrape(
    cfg: Config,
    seeds: List[SeedRecord],
    sink: CsvSink,
    log_ext: LoggingExtension,
) -> List[TaskOutcome]:
    async with RunContext.open(cfg, sink) as ctx:

        async def _task(seed: SeedRecord) -> TaskOutcome:
            token = log_ext.set_listing_context(seed.label)
            try:
                return await ListingTask(ctx, seed).run()
            finally:
                log_ext.reset_listing_context(token)

        return await run_listings(ctx, seeds, task_fn=_task)


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    cfg = _apply_overrides(load_config(), args)

    stamp = run_stamp()
    dirs = ensure_output_dirs(cfg.output_dir, cfg.screenshots_dir)

    # Logging
    level = getattr(logging, args.log_level)
    log_file = None if args.no_log_file else run_log_path(cfg.output_dir, stamp)
    log_ext = LoggingExtension(log_file, global_level=level)
    root_logger = logging.getLogger("run_scrape")

    try:
        try:
            seeds = load_seeds(cfg.input_path, limit=args.limit, dedupe=args.dedupe)
        except (OSError, ValueError) as e:
            root_logger.error("Could not load seeds from %s: %s", cfg.input_path, e)
            return 1
        if not seeds:
            root_logger.error("No valid seeds in %s. Exiting.", cfg.input_path)
            return 1

        root_logger.info("Loaded %d listing(s): %s", len(seeds), seeds_summary(seeds))
        root_logger.info(
            "Config: concurrent=%s max_pages=%d timeout=%dms settle=%d-%dms lang=%s headless=%s",
            cfg.concurrent, cfg.max_concurrent_pages, cfg.page_load_timeout_ms,
            cfg.settle_min_ms, cfg.settle_max_ms, cfg.listing_lang or "(seed)", cfg.headless,
        )
        root_logger.debug("Screenshots dir: %s", dirs["screenshots"])

        csv_path = output_csv_path(cfg.output_dir, stamp)
        summary = RunSummary(len(seeds), output_csv=csv_path)
        try:
            sink = CsvSink(csv_path, HEADERS).open()
        except SinkError as e:
            root_logger.error("%s", e)
            return 1
        try:
            outcomes = await scrape(cfg, seeds, sink, log_ext)
        finally:
            sink.close()
            summary.mark_finished()

        summary.record_all(outcomes)
        await summary.save(summary_path(csv_path))
        summary.log()
        return 0
    finally:
        log_ext.close()


# ----------------------------
# Entrypoint
# ----------------------------

def main(argv: Optional[List[str]] = None) -> None:
    sys.exit(asyncio.run(main_async(argv)))

if __name__ == "__main__":
    main()
