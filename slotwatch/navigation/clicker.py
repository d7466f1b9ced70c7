"""
Click-and-confirm engine.

There is no reliable "page loaded" signal on the sites SlotWatch inspects, so
an activation counts as successful only when one of three confirmation signals
fires: a full navigation, a location change without navigation, or a change in
the set of visible interactive labels.
"""

import logging
import time as time_module
from collections.abc import Sequence

from slotwatch.errors import ElementNotFound, NoObservableChange
from slotwatch.navigation.resolver import Candidate, ElementResolver
from slotwatch.providers.base import PageDriver, PageSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_LOG_LIMIT = 30


def describe_labels(snapshot: PageSnapshot, limit: int = SNAPSHOT_LOG_LIMIT) -> str:
    labels = sorted(snapshot.labels)
    shown = " | ".join(labels[:limit])
    if len(labels) > limit:
        shown += f" | ... (+{len(labels) - limit})"
    return shown


class ClickEngine:
    """
    Resolves a control by label, activates it and confirms an observable effect.

    Usage:
        engine = ClickEngine(ElementResolver())
        engine.activate(page, ["検索", "さがす"])
    """

    def __init__(
        self,
        resolver: ElementResolver | None = None,
        confirm_timeout: float = 20.0,
        keyboard_timeout: float = 8.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.resolver = resolver or ElementResolver()
        self.confirm_timeout = confirm_timeout
        self.keyboard_timeout = keyboard_timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    def activate(
        self,
        page: PageDriver,
        queries: Sequence[str],
        tags: Sequence[str] | None = None,
    ) -> Candidate:
        """
        Click the best control for `queries` and wait for a confirmation signal.

        Each attempt re-resolves the control, since the page may have changed
        shape since the previous one. After all attempts go unconfirmed, one
        keyboard ENTER is sent to the last candidate as a final resort.

        Returns:
            The candidate whose activation was confirmed.

        Raises:
            ElementNotFound: No candidate matched on the final attempt.
            NoObservableChange: Activations happened but nothing changed.
        """
        queries = list(queries)
        last_click: tuple[Candidate, PageSnapshot] | None = None

        for attempt in range(1, self.max_attempts + 1):
            candidate = self.resolver.resolve(page, queries, tags)
            if candidate is None:
                if attempt == self.max_attempts:
                    logger.warning(
                        f"Element not found for {queries}: {describe_labels(page.snapshot())}"
                    )
                    raise ElementNotFound(queries)
                logger.info(f"Attempt {attempt}/{self.max_attempts}: no candidate for {queries}")
                time_module.sleep(self.retry_delay)
                continue

            page.scroll_into_view(candidate.info)
            # Changes made before this click (late rendering) must not confirm it.
            before = page.snapshot()
            last_click = (candidate, before)
            page.click(candidate.info)
            signal = page.wait_for_change(before, self.confirm_timeout)
            if signal:
                self._log_confirmed(queries, candidate, signal, before, page)
                return candidate

            logger.info(
                f"Attempt {attempt}/{self.max_attempts}: clicked '{candidate.matched_text[:40]}' "
                f"for {queries} but nothing changed"
            )

        if last_click is None:
            raise ElementNotFound(queries)
        candidate, before = last_click
        logger.info(f"Sending keyboard confirm to '{candidate.matched_text[:40]}'")
        page.press_enter(candidate.info)
        signal = page.wait_for_change(before, self.keyboard_timeout)
        if signal:
            self._log_confirmed(queries, candidate, signal, before, page)
            return candidate

        logger.warning(
            f"No observable change for {queries} after {self.max_attempts} attempts. "
            f"Labels: {describe_labels(before)}"
        )
        raise NoObservableChange(queries, self.max_attempts)

    def _log_confirmed(
        self,
        queries: Sequence[str],
        candidate: Candidate,
        signal: str,
        before: PageSnapshot,
        page: PageDriver,
    ) -> None:
        after = page.snapshot()
        logger.info(
            f"Activated '{candidate.matched_text[:40]}' for {list(queries)} ({signal}). "
            f"Before: {describe_labels(before)} / After: {describe_labels(after)}"
        )

    def activate_any(
        self,
        page: PageDriver,
        alternatives: Sequence[str],
        tags: Sequence[str] | None = None,
    ) -> Candidate:
        """
        Satisfy one navigation step: try each alternative label in order.

        The first alternative whose activation is confirmed wins. Alternatives
        with no candidate on the page are skipped without retrying. If none is
        confirmed, the last error is re-raised.
        """
        last_error: ElementNotFound | NoObservableChange | None = None
        for alternative in alternatives:
            if self.resolver.resolve(page, [alternative], tags) is None:
                logger.debug(f"Skipping absent alternative '{alternative}'")
                continue
            try:
                return self.activate(page, [alternative], tags)
            except (ElementNotFound, NoObservableChange) as e:
                last_error = e
        if last_error is None:
            raise ElementNotFound(list(alternatives))
        raise last_error
