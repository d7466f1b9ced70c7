"""
Command-line entry point for a single scan run.

Exit codes:
    0  the run completed (regardless of hit count)
    1  unexpected fatal error (e.g. the browser could not be launched)
    2  configuration error (target file missing or malformed)

Both fatal paths attempt one best-effort notification describing the failure.
"""

import argparse
import asyncio
import logging
import sys
import traceback

from slotwatch.config import CacheBackend, NotifierChannel, settings
from slotwatch.errors import ConfigurationError, NotificationTransportError
from slotwatch.models.database import init_db
from slotwatch.providers.notifier_base import LogNotifier, Notifier
from slotwatch.services.scan_service import build_notifier, build_scan_service
from slotwatch.services.target_loader import load_targets

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slotwatch",
        description="Check facility reservation pages for newly opened slots.",
    )
    parser.add_argument("--targets", default=settings.targets_path, help="Path to targets JSON")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them and keep the cache in memory",
    )
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    return parser.parse_args(argv)


async def send_failure_alert(notifier: Notifier, subject: str, body: str) -> None:
    try:
        await notifier.send(subject, body)
    except NotificationTransportError as e:
        logger.error(f"Failed to send failure alert: {e}")


async def run(args: argparse.Namespace) -> int:
    config = settings.model_copy()
    if args.headed:
        config.headless = False
    if args.dry_run:
        config.notifier_channel = NotifierChannel.LOG
        config.cache_backend = CacheBackend.MEMORY
    notifier = LogNotifier() if args.dry_run else build_notifier(config)

    try:
        targets = load_targets(args.targets)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        await send_failure_alert(notifier, "【設定エラー】slotwatch", str(e))
        return EXIT_CONFIG

    try:
        if config.cache_backend == CacheBackend.DATABASE:
            await init_db()
        service = build_scan_service(config, notifier=notifier)
        report = await service.run(targets)
    except Exception as e:
        logger.exception(f"Fatal error during scan: {e}")
        await send_failure_alert(notifier, "【監視エラー】slotwatch", traceback.format_exc())
        return EXIT_FATAL

    logger.info(f"Run finished: {report.hit_count}/{len(report.results)} targets with vacancies")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
