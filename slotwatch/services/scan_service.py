"""
Scan service: runs every configured target and reports newly opened slots.

Targets are processed sequentially on one browser page. A failure while
scanning one target is recorded on that target's ScanResult and never stops
the remaining targets. Newly detected slots pass through the dedup cache
(written through on every add) and are reported in a single notification at
the end of the run.
"""

import asyncio
import logging
import random
import time as time_module
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

import pytz

from slotwatch.config import CacheBackend, NotifierChannel, Settings, TieBreakPolicy, settings
from slotwatch.errors import NotificationTransportError
from slotwatch.models.schemas import NotifiedKey, RunReport, ScanResult, SiteKind, Target
from slotwatch.navigation.clicker import ClickEngine
from slotwatch.navigation.pagination import PaginationAggregator
from slotwatch.navigation.resolver import ElementResolver, first_tie_breaker, random_tie_breaker
from slotwatch.navigation.text import normalize
from slotwatch.providers.base import PageDriver
from slotwatch.providers.email_provider import EmailNotifier
from slotwatch.providers.notifier_base import LogNotifier, Notifier
from slotwatch.providers.selenium_page import SeleniumPage, create_driver
from slotwatch.providers.sites import SiteStrategy, get_site_strategy, human_pause
from slotwatch.providers.twilio_provider import TwilioNotifier
from slotwatch.services.availability_service import AvailabilityService
from slotwatch.services.cache_service import (
    DatabaseDedupCache,
    DedupCache,
    InMemoryDedupCache,
    JsonFileDedupCache,
)

logger = logging.getLogger(__name__)

REPORT_SAMPLE_CHARS = 140
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"


def format_result_line(result: ScanResult) -> str:
    if result.error:
        lines = [f"× {result.name}（{result.url}）: ERROR {result.error}"]
        lines += [f"   新規: {key}" for key in result.new_keys]
        return "\n".join(lines)
    marker = "✅" if result.hit else "—"
    lines = [f"{marker} {result.name}（{result.url}）"]
    if result.sample:
        lines.append(f"   例: {normalize(result.sample)[:REPORT_SAMPLE_CHARS]}…")
    for key in result.new_keys:
        lines.append(f"   新規: {key}")
    return "\n".join(lines)


def format_report(report: RunReport, timezone: str = "Asia/Tokyo") -> str:
    started = report.started_at.astimezone(pytz.timezone(timezone))
    header = [
        f"実行時刻（JST）: {started.strftime(TIMESTAMP_FORMAT)}",
        f"ヒット: {report.hit_count}件 / 新規: {report.new_key_count}件 / エラー: {report.error_count}件",
        "",
    ]
    return "\n".join(header + [format_result_line(r) for r in report.results])


class ScanService:
    """
    Orchestrates one scan run over a list of targets.

    Attributes:
        page_factory: Creates the browser page for the run; called once.
        cache: Dedup cache of notified keys.
        notifier: Channel used for the run's single hit notification.
        availability: Weekday/keyword availability policy.
        strategy_factory: Returns the site strategy for a target's kind.
    """

    def __init__(
        self,
        page_factory: Callable[[], PageDriver],
        cache: DedupCache,
        notifier: Notifier,
        availability: AvailabilityService,
        strategy_factory: Callable[[SiteKind], SiteStrategy],
        pacing_seconds: tuple[float, float] = (2.0, 4.0),
        sample_chars: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.page_factory = page_factory
        self.cache = cache
        self.notifier = notifier
        self.availability = availability
        self.strategy_factory = strategy_factory
        self.pacing_seconds = pacing_seconds
        self.sample_chars = sample_chars
        self._sleep = sleep

    def _now(self) -> datetime:
        return datetime.now(pytz.timezone(self.availability.timezone))

    async def run(self, targets: Sequence[Target]) -> RunReport:
        """
        Scan every target, then send one notification if any new slot was found.

        Errors raised while creating the browser page are not caught here; they
        are fatal for the run.
        """
        report = RunReport(started_at=self._now())
        logger.info(f"Starting scan of {len(targets)} targets at {report.started_at:%Y-%m-%d %H:%M:%S}")
        await self.cache.load()

        page = await asyncio.to_thread(self.page_factory)
        try:
            for index, target in enumerate(targets):
                result = await self.scan_target(page, target)
                report.results.append(result)
                if index < len(targets) - 1:
                    await self._pace()
        finally:
            await asyncio.to_thread(page.close)

        report.finished_at = self._now()
        report.notified = await self.notify(report)
        logger.info(
            f"Scan complete: {report.hit_count} hits, {report.new_key_count} new keys, "
            f"{report.error_count} errors"
        )
        return report

    async def scan_target(self, page: PageDriver, target: Target) -> ScanResult:
        start = time_module.monotonic()
        logger.info(f"[{target.name}] scanning {target.url} ({target.kind.value})")
        # Keys added before a failing add are still reported and notified.
        new_keys: list[str] = []
        try:
            strategy = self.strategy_factory(target.kind)
            text = await asyncio.to_thread(strategy.scan, page, target)
            slots = self.availability.open_slots(
                text, target.effective_keywords, times=target.times, courts=target.courts
            )

            for slot in slots:
                key = NotifiedKey.for_slot(target, slot).identity
                if await self.cache.has(key):
                    logger.info(f"[{target.name}] already notified: {key}")
                    continue
                await self.cache.add(key)
                new_keys.append(key)
                logger.info(f"[{target.name}] new open slot: {key}")

            return ScanResult(
                name=target.name,
                url=target.url,
                hit=bool(slots),
                sample=text[: self.sample_chars],
                elapsed_ms=int((time_module.monotonic() - start) * 1000),
                open_slots=tuple(slots),
                new_keys=tuple(new_keys),
            )
        except Exception as e:
            logger.exception(f"[{target.name}] scan failed: {e}")
            return ScanResult(
                name=target.name,
                url=target.url,
                hit=bool(new_keys),
                elapsed_ms=int((time_module.monotonic() - start) * 1000),
                error=f"{type(e).__name__}: {e}",
                new_keys=tuple(new_keys),
            )

    async def _pace(self) -> None:
        low, high = self.pacing_seconds
        delay = random.uniform(low, high)
        logger.debug(f"Pausing {delay:.1f}s before next target")
        await self._sleep(delay)

    async def notify(self, report: RunReport) -> bool:
        """Send the hit notification; returns whether one was delivered."""
        body = format_report(report, self.availability.timezone)
        if report.new_key_count == 0:
            logger.info(f"No new slots; notification skipped\n{body}")
            return False
        subject = f"【空き検知】{report.new_key_count}件"
        try:
            await self.notifier.send(subject, body)
        except NotificationTransportError as e:
            logger.error(f"Failed to send notification: {e}")
            return False
        return True


def build_notifier(config: Settings = settings) -> Notifier:
    if config.notifier_channel == NotifierChannel.EMAIL:
        return EmailNotifier(
            host=config.mail_host,
            port=config.mail_port,
            user=config.mail_user,
            password=config.mail_pass,
            recipients=EmailNotifier.parse_recipients(config.mail_to, config.mail_user),
        )
    if config.notifier_channel in (NotifierChannel.SMS, NotifierChannel.WHATSAPP):
        return TwilioNotifier(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_phone_number,
            to_number=config.user_phone_number,
            channel=config.notifier_channel.value,
        )
    return LogNotifier()


def build_cache(config: Settings = settings) -> DedupCache:
    if config.cache_backend == CacheBackend.DATABASE:
        return DatabaseDedupCache()
    if config.cache_backend == CacheBackend.MEMORY:
        return InMemoryDedupCache()
    return JsonFileDedupCache(config.cache_path)


def build_scan_service(
    config: Settings = settings,
    notifier: Notifier | None = None,
    cache: DedupCache | None = None,
) -> ScanService:
    """Wire a ScanService backed by headless Chrome from configuration values."""
    tie_breaker = (
        random_tie_breaker if config.tie_break_policy == TieBreakPolicy.RANDOM else first_tie_breaker
    )
    clicker = ClickEngine(
        ElementResolver(tie_breaker),
        confirm_timeout=config.click_confirm_timeout,
        keyboard_timeout=config.keyboard_confirm_timeout,
        max_attempts=config.click_retries,
    )
    aggregator = PaginationAggregator(
        clicker,
        selector_timeout=config.selector_timeout,
        min_body_length=config.min_body_length,
    )

    def strategy_factory(kind: SiteKind) -> SiteStrategy:
        return get_site_strategy(
            kind,
            clicker,
            aggregator,
            navigation_timeout=config.navigation_timeout,
            max_pages=config.max_pages,
            pause=lambda: human_pause(config.step_pause_min_seconds, config.step_pause_max_seconds),
        )

    def page_factory() -> PageDriver:
        return SeleniumPage(
            create_driver(
                headless=config.headless,
                chromedriver_path=config.chromedriver_path,
                timezone=config.timezone,
            )
        )

    return ScanService(
        page_factory=page_factory,
        cache=cache or build_cache(config),
        notifier=notifier or build_notifier(config),
        availability=AvailabilityService(
            timezone=config.timezone,
            weekday=config.target_weekday,
            window=config.window_chars,
        ),
        strategy_factory=strategy_factory,
        pacing_seconds=(config.pacing_min_seconds, config.pacing_max_seconds),
        sample_chars=config.sample_chars,
    )
