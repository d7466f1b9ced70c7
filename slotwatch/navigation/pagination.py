import logging
from collections.abc import Sequence

from slotwatch.errors import ElementNotFound, NoObservableChange, SelectorTimeout
from slotwatch.navigation.clicker import ClickEngine
from slotwatch.providers.base import PageDriver

logger = logging.getLogger(__name__)

DEFAULT_NEXT_LABELS: tuple[str, ...] = (
    "次の期間",
    "次週",
    "翌週",
    "次月",
    "翌月",
    "次の月",
    "次へ",
    ">>",
    "Next",
)


class PaginationAggregator:
    """
    Reads a result region across a bounded number of calendar pages.

    The first page is read as-is; each further page is reached by activating
    a "next period" control. Failing to advance ends aggregation early and the
    partial text is returned.
    """

    def __init__(
        self,
        clicker: ClickEngine,
        selector_timeout: float = 25.0,
        min_body_length: int = 200,
        body_timeout: float = 10.0,
    ) -> None:
        self.clicker = clicker
        self.selector_timeout = selector_timeout
        self.min_body_length = min_body_length
        self.body_timeout = body_timeout

    def read_region(self, page: PageDriver, result_selector: str) -> str:
        page.wait_for_selector(result_selector, self.selector_timeout)
        if not page.wait_for_body_length(self.min_body_length, self.body_timeout):
            logger.info(
                f"Body text stayed under {self.min_body_length} chars; reading region anyway"
            )
        return page.read_text(result_selector)

    def collect(
        self,
        page: PageDriver,
        result_selector: str,
        max_pages: int = 2,
        next_labels: Sequence[str] = DEFAULT_NEXT_LABELS,
    ) -> str:
        """
        Concatenate the region text of up to `max_pages` pages, newline-separated.

        Raises:
            SelectorTimeout: The region never appeared on the first page.
        """
        pages = [self.read_region(page, result_selector)]

        for page_number in range(2, max_pages + 1):
            try:
                self.clicker.activate_any(page, next_labels)
            except (ElementNotFound, NoObservableChange) as e:
                logger.info(f"Stopping pagination before page {page_number}: {e}")
                break
            try:
                pages.append(self.read_region(page, result_selector))
            except SelectorTimeout as e:
                logger.info(f"Result region missing on page {page_number}: {e}")
                break
            logger.debug(f"Collected page {page_number} ({len(pages[-1])} chars)")

        return "\n".join(pages)
