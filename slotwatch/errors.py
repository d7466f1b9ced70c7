"""
Error taxonomy for scan runs.

Per-step failures (everything except ConfigurationError) are caught at the
per-target boundary by the scan service and recorded on the target's
ScanResult. ConfigurationError is fatal for the whole run.
"""

from collections.abc import Sequence


class SlotWatchError(Exception):
    """Base class for all SlotWatch errors."""


class ElementNotFound(SlotWatchError):
    """No candidate matched any query in any page context."""

    def __init__(self, queries: Sequence[str]) -> None:
        self.queries = tuple(queries)
        super().__init__(f"No element matched any of {list(self.queries)}")


class NoObservableChange(SlotWatchError):
    """An activation happened but no confirmation signal fired within budget."""

    def __init__(self, queries: Sequence[str], attempts: int) -> None:
        self.queries = tuple(queries)
        self.attempts = attempts
        super().__init__(
            f"No observable change after {attempts} activation attempts for {list(self.queries)}"
        )


class SelectorTimeout(SlotWatchError):
    """The expected result region never appeared."""

    def __init__(self, selector: str, timeout: float) -> None:
        self.selector = selector
        self.timeout = timeout
        super().__init__(f"Selector '{selector}' did not appear within {timeout:.0f}s")


class NavigationTimeout(SlotWatchError):
    def __init__(self, url: str, timeout: float) -> None:
        self.url = url
        self.timeout = timeout
        super().__init__(f"Navigation to {url} did not complete within {timeout:.0f}s")


class ConfigurationError(SlotWatchError):
    """The target list is missing or malformed."""


class NotificationTransportError(SlotWatchError):
    """A notifier could not deliver a message."""
