"""
Per-site scanning strategies.

Each Target names a site kind; the strategy for that kind decides how to
reach the facility page and which labels advance the calendar. The shared
traversal (walking the facility path, aggregating pages) lives in
SiteStrategy so new site variants only override what differs.
"""

import logging
import random
import time as time_module
from collections.abc import Callable, Sequence

from slotwatch.errors import ElementNotFound, NoObservableChange
from slotwatch.models.schemas import SiteKind, Target
from slotwatch.navigation.clicker import ClickEngine
from slotwatch.navigation.pagination import DEFAULT_NEXT_LABELS, PaginationAggregator
from slotwatch.providers.base import PageDriver

logger = logging.getLogger(__name__)


def human_pause(min_seconds: float = 0.2, max_seconds: float = 0.8) -> None:
    time_module.sleep(random.uniform(min_seconds, max_seconds))


class SiteStrategy:
    """Generic strategy: open the URL, walk the facility path, read up to max_pages."""

    kind = SiteKind.GENERIC
    step_tags: Sequence[str] | None = None
    next_labels: Sequence[str] = DEFAULT_NEXT_LABELS

    def __init__(
        self,
        clicker: ClickEngine,
        aggregator: PaginationAggregator,
        navigation_timeout: float = 45.0,
        max_pages: int = 2,
        pause: Callable[[], None] = human_pause,
    ) -> None:
        self.clicker = clicker
        self.aggregator = aggregator
        self.navigation_timeout = navigation_timeout
        self.max_pages = max_pages
        self.pause = pause

    def scan(self, page: PageDriver, target: Target) -> str:
        """Return the aggregated result text for one target."""
        self.navigate(page, target)
        self.walk_path(page, target)
        return self.aggregator.collect(
            page, target.result_selector, max_pages=self.max_pages, next_labels=self.next_labels
        )

    def navigate(self, page: PageDriver, target: Target) -> None:
        page.goto(target.url, self.navigation_timeout)
        self.pause()

    def walk_path(self, page: PageDriver, target: Target) -> None:
        for number, alternatives in enumerate(target.steps, start=1):
            candidate = self.clicker.activate_any(page, alternatives, self.step_tags)
            logger.info(
                f"[{target.name}] step {number}/{len(target.steps)} "
                f"{list(alternatives)} -> '{candidate.matched_text[:40]}'"
            )
            self.pause()


class EKanagawaStrategy(SiteStrategy):
    """
    e-kanagawa shared reservation portal.

    Municipalities with a known mode-select page are opened directly; others
    are reached through the portal menus. Portal menu steps are best-effort;
    only the final municipality link must be found. A target with a facility
    query is then searched for by name before its facility path is walked.
    """

    kind = SiteKind.EKANAGAWA
    step_tags = (
        "a",
        "button",
        "input[type=submit]",
        "input[type=button]",
        "[role=button]",
        "label",
    )
    next_labels = ("次の期間", "次週", "翌週", "次へ", ">>")

    MUNICIPALITY_URLS = {
        "神奈川県": "https://yoyaku.e-kanagawa.lg.jp/Kanagawa/Web/Wg_ModeSelect.aspx",
        "海老名市": "https://yoyaku.e-kanagawa.lg.jp/Ebina/Web/Wg_ModeSelect.aspx",
    }
    PORTAL_MENU = ("施設予約システムメニュー", "ポータルサイトへ", "自治体から選ぶ")
    SEARCH_INPUT = "input[type=text], input[type=search]"
    SEARCH_LABELS = ("検索", "さがす")
    SEARCH_TAGS = ("button", "input[type=submit]")

    def navigate(self, page: PageDriver, target: Target) -> None:
        super().navigate(page, target)
        if not target.location:
            return
        direct_url = self.MUNICIPALITY_URLS.get(target.location)
        if direct_url:
            if not page.current_url.startswith(direct_url):
                page.goto(direct_url, self.navigation_timeout)
                self.pause()
            return
        for label in self.PORTAL_MENU:
            try:
                self.clicker.activate(page, [label], self.step_tags)
            except (ElementNotFound, NoObservableChange) as e:
                logger.info(f"[{target.name}] portal menu '{label}' skipped: {e}")
            self.pause()
        self.clicker.activate(page, [target.location], self.step_tags)
        self.pause()

    def walk_path(self, page: PageDriver, target: Target) -> None:
        if target.facility_query:
            self.search_facility(page, target)
            self.open_facility(page, target)
        super().walk_path(page, target)

    def search_facility(self, page: PageDriver, target: Target) -> None:
        """Type the facility query into the search box and submit it, if the page has one."""
        if not page.fill(self.SEARCH_INPUT, target.facility_query):
            logger.info(f"[{target.name}] no search box; looking for the facility link directly")
            return
        try:
            self.clicker.activate(page, self.SEARCH_LABELS, self.SEARCH_TAGS)
        except (ElementNotFound, NoObservableChange) as e:
            logger.info(f"[{target.name}] search not submitted: {e}")
        self.pause()

    def open_facility(self, page: PageDriver, target: Target) -> None:
        """
        Click the facility link by its full name.

        When no link carries the full query, each of its space-separated
        words is tried in order.
        """
        query = target.facility_query
        words = [word for word in query.split() if word != query]
        candidate = self.clicker.activate_any(page, [query, *words], ("a",))
        logger.info(f"[{target.name}] facility '{query}' -> '{candidate.matched_text[:40]}'")
        self.pause()


class ChigasakiStrategy(SiteStrategy):
    """Chigasaki facility calendar: month-based paging."""

    kind = SiteKind.CHIGASAKI
    next_labels = ("翌月", "次月", "次の月", "次へ", ">>")


SITE_STRATEGIES: dict[SiteKind, type[SiteStrategy]] = {
    SiteKind.GENERIC: SiteStrategy,
    SiteKind.EKANAGAWA: EKanagawaStrategy,
    SiteKind.CHIGASAKI: ChigasakiStrategy,
}


def get_site_strategy(
    kind: SiteKind,
    clicker: ClickEngine,
    aggregator: PaginationAggregator,
    **kwargs: object,
) -> SiteStrategy:
    strategy_cls = SITE_STRATEGIES.get(kind, SiteStrategy)
    return strategy_cls(clicker, aggregator, **kwargs)  # type: ignore[arg-type]
