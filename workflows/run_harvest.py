#!/usr/bin/env python3
"""
Harvest workflow - Scrape the practice site on a cron schedule.

Each session: load the page, save the listed names to names.txt, click to
reveal text, submit the form and log the result, then download every image.

USAGE:

1. Run one session:
   uv run python -m workflows.run_harvest run

2. Run on the configured schedule (default: every 5 seconds) until stopped:
   uv run python -m workflows.run_harvest schedule

3. Preview upcoming ticks:
   uv run python -m workflows.run_harvest next --count 10

CONFIG (env vars or .env, see services/harvest/config.py):
- HARVEST_SCHEDULE      cron expression, seconds field optional
- HARVEST_OUTPUT_DIR    where names.txt and images are written
- HARVEST_TARGET_URL    page to scrape
- HARVEST_HEADLESS      false to watch the browser
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import asyncio
import signal
from datetime import datetime

from loguru import logger
from pydantic import ValidationError

from services.harvest.config import HarvestConfig
from services.harvest.errors import HarvestError
from services.harvest.service import Service
from workflows.scheduler import Scheduler


LOG_FILE = "page_harvest.log"


def setup_logging(debug: bool = False) -> None:
    """Configure loguru logging."""
    logger.remove()

    # Console: INFO by default, DEBUG if flag set
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if debug else "INFO",
        colorize=True,
    )

    # File: Always DEBUG
    logger.add(
        LOG_FILE,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        level="DEBUG",
        rotation="10 MB",
    )


async def run_once(config: HarvestConfig) -> bool:
    """Run a single session. Returns True on success."""
    service = Service(config)
    try:
        result = await service.run_session()
    except HarvestError as e:
        logger.error(f"Harvest failed ({e.category}): {e}")
        return False

    logger.info("=" * 60)
    logger.info("HARVEST COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Names saved: {len(result.names)} -> {result.names_file}")
    logger.info(f"Revealed text: {result.revealed_text}")
    logger.info(f"Form result: {result.form_result}")
    logger.info(f"Images saved: {len(result.images)}")
    for image in result.images:
        logger.info(f"  {image.path} ({image.size} bytes)")
    logger.info("=" * 60)
    return True


async def run_scheduled(config: HarvestConfig) -> None:
    """Run sessions on the cron schedule until SIGINT/SIGTERM."""
    service = Service(config)
    scheduler = Scheduler(config.cron, service.run_session, timezone=config.tzinfo)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    logger.info(f"Output directory: {config.output_dir.resolve()}")
    await scheduler.run_forever()


def show_next(config: HarvestConfig, count: int) -> None:
    """Print the next `count` ticks of the configured schedule."""
    cron = config.cron
    t = datetime.now(config.tzinfo)
    logger.info(f"Next {count} ticks for '{cron}':")
    for _ in range(count):
        t = cron.next_after(t)
        logger.info(f"  {t:%Y-%m-%d %H:%M:%S %Z}".rstrip())


def build_config(args: argparse.Namespace) -> HarvestConfig:
    return HarvestConfig.from_env(
        schedule=args.schedule,
        output_dir=args.output_dir,
        target_url=args.url,
        headless=False if args.headed else None,
    )


def main():
    parser = argparse.ArgumentParser(
        description="Scrape the practice site on a cron schedule",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One session, output into ./out
  uv run python -m workflows.run_harvest run --output-dir out

  # Every minute at second 0, with a visible browser
  uv run python -m workflows.run_harvest schedule --schedule "0 * * * * *" --headed

  # Check what a schedule expression does
  uv run python -m workflows.run_harvest next --schedule "*/15 * * * * *" --count 5

Notes:
  - A tick that arrives while a session is still running is skipped
  - Output files are overwritten on every run
        """
    )
    parser.add_argument("--schedule", "-s", help="Cron expression (default: HARVEST_SCHEDULE or */5 * * * * *)")
    parser.add_argument("--output-dir", "-o", help="Directory for names.txt and images")
    parser.add_argument("--url", help="Target page URL")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("run", help="Run one harvest session")
    subparsers.add_parser("schedule", help="Run harvest sessions on the cron schedule")
    next_parser = subparsers.add_parser("next", help="Show upcoming schedule ticks")
    next_parser.add_argument(
        "--count", "-n",
        type=int,
        default=5,
        help="Number of ticks to show (default: 5)"
    )

    args = parser.parse_args()
    setup_logging(debug=args.debug)

    if args.command is None:
        parser.print_help()
        return

    try:
        config = build_config(args)
    except (ValidationError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    if args.command == "run":
        ok = asyncio.run(run_once(config))
        sys.exit(0 if ok else 1)
    elif args.command == "schedule":
        try:
            asyncio.run(run_scheduled(config))
        except KeyboardInterrupt:
            logger.info("Interrupted")
    elif args.command == "next":
        show_next(config, args.count)


if __name__ == "__main__":
    main()
