"""
Selenium implementation of the PageDriver interface.

A page context is the path of frame indices leading from the top document to
a (possibly nested) frame; the empty tuple is the top document. Every
operation switches to the right context before touching the DOM, and
snapshots always start from the top document.
"""

import functools
import logging
import time as time_module
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from selenium import webdriver
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    ElementNotInteractableException,
    NoSuchElementException,
    NoSuchFrameException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from slotwatch.errors import NavigationTimeout, SelectorTimeout
from slotwatch.providers.base import INTERACTIVE_TAGS, ElementInfo, PageDriver, PageSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

FrameContext = tuple[int, ...]

FRAME_SELECTOR = "iframe, frame"
MAX_FRAME_DEPTH = 4
POLL_FREQUENCY = 0.25

TRANSIENT_EXCEPTIONS = (
    StaleElementReferenceException,
    ElementClickInterceptedException,
    TimeoutException,
)

COLLECT_SCRIPT = """
const selector = arguments[0];
const queries = arguments[1];
const norm = (s) => (s || '')
  .replace(/[\\uFF21-\\uFF3A\\uFF41-\\uFF5A\\uFF10-\\uFF19]/g,
           (c) => String.fromCharCode(c.charCodeAt(0) - 0xFEE0))
  .replace(/\\s+/g, ' ').trim();
const out = [];
document.querySelectorAll(selector).forEach((el, i) => {
  const tag = el.tagName.toLowerCase();
  const text = el.innerText || el.textContent || '';
  const title = el.getAttribute('title') || '';
  const aria = el.getAttribute('aria-label') || '';
  const alt = el.getAttribute('alt') || '';
  const value = tag === 'input' ? (el.value || '') : '';
  const joined = [text, title, aria, alt, value].map(norm).join('\\n');
  if (queries.length && !queries.some((q) => joined.includes(q))) return;
  const r = el.getBoundingClientRect();
  const cs = window.getComputedStyle(el);
  out.push({
    element: el, index: i, tag: tag, text: text, title: title,
    aria_label: aria, alt: alt, value: value,
    role: el.getAttribute('role') || '',
    input_type: (el.getAttribute('type') || '').toLowerCase(),
    has_href: el.hasAttribute('href'),
    has_onclick: el.hasAttribute('onclick') || typeof el.onclick === 'function',
    pointer_cursor: cs.cursor === 'pointer',
    visible: r.width > 0 && r.height > 0 && cs.display !== 'none'
      && cs.visibility !== 'hidden' && cs.opacity !== '0',
  });
});
return out;
"""

LABELS_SCRIPT = """
const labels = [];
document.querySelectorAll(arguments[0]).forEach((el) => {
  const r = el.getBoundingClientRect();
  if (r.width === 0 || r.height === 0) return;
  const t = (el.innerText || el.value || el.getAttribute('aria-label') || '')
    .replace(/\\s+/g, ' ').trim();
  if (t) labels.push(t);
});
return labels;
"""

DOCUMENT_ID_SCRIPT = """
if (!window.__slotwatchDocId) {
  window.__slotwatchDocId = Math.random().toString(36).slice(2);
}
return [window.__slotwatchDocId, document.readyState];
"""

SYNTHETIC_CLICK_SCRIPT = """
arguments[0].dispatchEvent(new MouseEvent('click', {bubbles: true, cancelable: true, view: window}));
"""


def with_retry(
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    exceptions: tuple[type[Exception], ...] = TRANSIENT_EXCEPTIONS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a DOM operation that races with page re-rendering.

    The delay starts at `backoff_base` seconds and doubles after each failed
    attempt. Exceptions outside `exceptions` propagate on the first failure;
    after `max_attempts` the last retried exception is re-raised.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = backoff_base * (2**attempt)
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        time_module.sleep(delay)
                    else:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {e}")
            raise last_exception  # type: ignore[misc]

        return wrapper

    return decorator


def create_driver(
    headless: bool = True,
    chromedriver_path: str = "",
    timezone: str = "Asia/Tokyo",
) -> webdriver.Chrome:
    """Create a Chrome WebDriver that presents itself as a Japanese-locale browser."""
    options = Options()
    if headless:
        options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-setuid-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--window-size=1920,1080")
    options.add_argument("--lang=ja-JP")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option("useAutomationExtension", False)
    options.add_experimental_option("prefs", {"intl.accept_languages": "ja-JP,ja"})

    if chromedriver_path:
        service = Service(chromedriver_path)
    else:
        service = Service(ChromeDriverManager().install())
    driver = webdriver.Chrome(service=service, options=options)

    driver.execute_cdp_cmd("Emulation.setTimezoneOverride", {"timezoneId": timezone})
    driver.execute_cdp_cmd(
        "Page.addScriptToEvaluateOnNewDocument",
        {
            "source": """
            Object.defineProperty(navigator, 'webdriver', {
                get: () => undefined
            })
        """
        },
    )
    return driver


class SeleniumPage(PageDriver):
    """PageDriver backed by one Chrome WebDriver."""

    def __init__(self, driver: webdriver.Chrome) -> None:
        self.driver = driver
        self._selector_context: dict[str, FrameContext] = {}

    @property
    def current_url(self) -> str:
        self.driver.switch_to.default_content()
        return self.driver.current_url

    def goto(self, url: str, timeout: float) -> None:
        logger.info(f"Navigating to {url}")
        self.driver.set_page_load_timeout(timeout)
        try:
            self.driver.get(url)
        except TimeoutException as e:
            raise NavigationTimeout(url, timeout) from e
        self._selector_context.clear()

    def _enter(self, context: FrameContext) -> None:
        self.driver.switch_to.default_content()
        for index in context:
            frames = self.driver.find_elements(By.CSS_SELECTOR, FRAME_SELECTOR)
            if index >= len(frames):
                raise NoSuchFrameException(f"Frame path {context} no longer exists")
            self.driver.switch_to.frame(frames[index])

    def contexts(self) -> list[FrameContext]:
        found: list[FrameContext] = []

        def walk(path: FrameContext) -> None:
            found.append(path)
            if len(path) >= MAX_FRAME_DEPTH:
                return
            try:
                self._enter(path)
                count = len(self.driver.find_elements(By.CSS_SELECTOR, FRAME_SELECTOR))
            except WebDriverException as e:
                logger.debug(f"Could not enumerate frames under {path}: {e}")
                return
            for index in range(count):
                walk(path + (index,))

        walk(())
        self.driver.switch_to.default_content()
        return found

    @with_retry(exceptions=(StaleElementReferenceException,))
    def collect_elements(
        self, context: FrameContext, tags: Sequence[str], queries: Sequence[str]
    ) -> list[ElementInfo]:
        try:
            self._enter(context)
        except (NoSuchFrameException, WebDriverException) as e:
            logger.debug(f"Skipping context {context}: {e}")
            return []
        raw = self.driver.execute_script(COLLECT_SCRIPT, ", ".join(tags), list(queries)) or []
        return [ElementInfo(context=context, **item) for item in raw]

    def scroll_into_view(self, info: ElementInfo) -> None:
        self._enter(info.context)
        try:
            self.driver.execute_script(
                "arguments[0].scrollIntoView({block: 'center', inline: 'center'});", info.element
            )
        except StaleElementReferenceException:
            logger.debug("Element went stale before scrolling")

    def click(self, info: ElementInfo) -> None:
        self._enter(info.context)
        try:
            info.element.click()
        except (ElementClickInterceptedException, ElementNotInteractableException) as e:
            logger.info(f"Native click unavailable ({type(e).__name__}); dispatching synthetic click")
            self.driver.execute_script(SYNTHETIC_CLICK_SCRIPT, info.element)
        except StaleElementReferenceException:
            logger.info("Element went stale before click")

    def press_enter(self, info: ElementInfo) -> None:
        self._enter(info.context)
        try:
            self.driver.execute_script("arguments[0].focus();", info.element)
            info.element.send_keys(Keys.ENTER)
        except (ElementNotInteractableException, StaleElementReferenceException) as e:
            logger.info(f"Keyboard confirm failed: {e}")

    def fill(self, selector: str, text: str) -> bool:
        context = self._locate(selector)
        if context is None:
            return False
        self._enter(context)
        try:
            field = self.driver.find_element(By.CSS_SELECTOR, selector)
            field.clear()
            field.send_keys(text)
        except (NoSuchElementException, ElementNotInteractableException) as e:
            logger.info(f"Could not type into {selector}: {e}")
            return False
        return True

    def _labels(self) -> frozenset[str]:
        labels: set[str] = set()
        selector = ", ".join(INTERACTIVE_TAGS)
        for context in self.contexts():
            try:
                self._enter(context)
                labels.update(self.driver.execute_script(LABELS_SCRIPT, selector) or [])
            except WebDriverException as e:
                logger.debug(f"Could not read labels in {context}: {e}")
        self.driver.switch_to.default_content()
        return frozenset(labels)

    def snapshot(self) -> PageSnapshot:
        self.driver.switch_to.default_content()
        document_id, ready_state = self.driver.execute_script(DOCUMENT_ID_SCRIPT)
        return PageSnapshot(
            url=self.driver.current_url,
            document_id=document_id,
            labels=self._labels(),
            ready=ready_state == "complete",
        )

    def wait_for_change(self, before: PageSnapshot, timeout: float) -> str | None:
        def changed(_driver: Any) -> str | None:
            try:
                return self.snapshot().change_from(before)
            except WebDriverException:
                # The document is being replaced; try again on the next poll.
                return None

        try:
            return WebDriverWait(self.driver, timeout, poll_frequency=POLL_FREQUENCY).until(changed)
        except TimeoutException:
            return None

    def _locate(self, selector: str) -> FrameContext | None:
        for context in self.contexts():
            try:
                self._enter(context)
                if self.driver.find_elements(By.CSS_SELECTOR, selector):
                    return context
            except WebDriverException:
                continue
        return None

    def wait_for_selector(self, selector: str, timeout: float) -> None:
        def located(_driver: Any) -> list[FrameContext] | None:
            # The top document is (), which is falsy; wrap it so the wait ends.
            context = self._locate(selector)
            return None if context is None else [context]

        try:
            found = WebDriverWait(self.driver, timeout, poll_frequency=0.5).until(located)
        except TimeoutException as e:
            raise SelectorTimeout(selector, timeout) from e
        self._selector_context[selector] = found[0]

    def wait_for_body_length(self, min_length: int, timeout: float) -> bool:
        def long_enough(driver: Any) -> bool:
            driver.switch_to.default_content()
            length = driver.execute_script(
                "return document.body ? document.body.innerText.length : 0;"
            )
            return (length or 0) >= min_length

        try:
            WebDriverWait(self.driver, timeout, poll_frequency=0.5).until(long_enough)
            return True
        except TimeoutException:
            return False

    @with_retry(exceptions=(StaleElementReferenceException,))
    def read_text(self, selector: str) -> str:
        context = self._selector_context.get(selector)
        if context is None:
            context = self._locate(selector) or ()
        self._enter(context)
        try:
            element = self.driver.find_element(By.CSS_SELECTOR, selector)
        except NoSuchElementException:
            return ""
        return self.driver.execute_script(
            "return arguments[0].innerText || arguments[0].textContent || '';", element
        )

    def close(self) -> None:
        try:
            self.driver.quit()
        except WebDriverException as e:
            logger.warning(f"Error closing WebDriver: {e}")
