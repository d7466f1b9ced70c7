from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# Tags and roles searched by default when resolving a click target.
DEFAULT_TAGS: tuple[str, ...] = (
    "a",
    "button",
    "[role=button]",
    "input[type=submit]",
    "input[type=button]",
    "input[type=image]",
    "img",
    "area",
    "option",
    "label",
    "div",
    "span",
    "li",
    "td",
)

# Elements whose texts make up the visible-label snapshot.
INTERACTIVE_TAGS: tuple[str, ...] = (
    "a",
    "button",
    "[role=button]",
    "input[type=submit]",
    "input[type=button]",
)


@dataclass
class ElementInfo:
    """Descriptor of one on-page element, as reported by a PageDriver."""

    element: Any
    context: Any
    tag: str
    text: str = ""
    title: str = ""
    aria_label: str = ""
    alt: str = ""
    value: str = ""
    role: str = ""
    input_type: str = ""
    has_href: bool = False
    has_onclick: bool = False
    pointer_cursor: bool = False
    visible: bool = True
    index: int = 0

    @property
    def labels(self) -> tuple[str, ...]:
        return (self.text, self.title, self.aria_label, self.alt, self.value)


@dataclass(frozen=True)
class PageSnapshot:
    """Observable page state used to confirm that an activation had an effect."""

    url: str
    document_id: str
    labels: frozenset[str] = field(default_factory=frozenset)
    ready: bool = True

    def change_from(self, before: "PageSnapshot") -> str | None:
        """
        Name the confirmation signal that fired between `before` and this snapshot.

        Returns "navigation" when the document was replaced and has finished
        loading, "route" when only the location changed, "labels" when the set
        of visible interactive labels differs, or None.
        """
        if self.document_id != before.document_id:
            return "navigation" if self.ready else None
        if self.url != before.url:
            return "route"
        if self.labels != before.labels:
            return "labels"
        return None


class PageDriver(ABC):
    """Abstract browsing context that the navigation engine drives."""

    @property
    @abstractmethod
    def current_url(self) -> str:
        pass

    @abstractmethod
    def goto(self, url: str, timeout: float) -> None:
        """Load a URL; raises NavigationTimeout when the load does not complete."""
        pass

    @abstractmethod
    def contexts(self) -> list[Any]:
        """Return the main document followed by every nested frame, depth-first."""
        pass

    @abstractmethod
    def collect_elements(
        self, context: Any, tags: Sequence[str], queries: Sequence[str]
    ) -> list[ElementInfo]:
        """
        Describe elements in one context matching the tag allow-list.

        Implementations may pre-filter by the normalized queries; the resolver
        re-checks every descriptor it receives.
        """
        pass

    @abstractmethod
    def scroll_into_view(self, info: ElementInfo) -> None:
        pass

    @abstractmethod
    def click(self, info: ElementInfo) -> None:
        """Activate the element, falling back to a synthetic click event."""
        pass

    @abstractmethod
    def press_enter(self, info: ElementInfo) -> None:
        pass

    @abstractmethod
    def fill(self, selector: str, text: str) -> bool:
        """Replace the value of the first input matching the selector; False when there is none."""
        pass

    @abstractmethod
    def snapshot(self) -> PageSnapshot:
        pass

    @abstractmethod
    def wait_for_change(self, before: PageSnapshot, timeout: float) -> str | None:
        """Block until a confirmation signal fires; return its name or None on timeout."""
        pass

    @abstractmethod
    def wait_for_selector(self, selector: str, timeout: float) -> None:
        """Wait for a selector in any context; raises SelectorTimeout."""
        pass

    @abstractmethod
    def wait_for_body_length(self, min_length: int, timeout: float) -> bool:
        pass

    @abstractmethod
    def read_text(self, selector: str) -> str:
        """Return the rendered text of the first element matching the selector."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass
