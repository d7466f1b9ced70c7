"""
Tests for the Selenium PageDriver in slotwatch/providers/selenium_page.py.

The WebDriver is a MagicMock; these tests cover frame-context handling,
error mapping and the retry decorator, not real browser behaviour.
"""

from unittest.mock import MagicMock, call, patch

import pytest
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    StaleElementReferenceException,
    TimeoutException,
)

from slotwatch.errors import NavigationTimeout, SelectorTimeout
from slotwatch.providers.base import ElementInfo
from slotwatch.providers.selenium_page import (
    DOCUMENT_ID_SCRIPT,
    LABELS_SCRIPT,
    SYNTHETIC_CLICK_SCRIPT,
    SeleniumPage,
    with_retry,
)


@pytest.fixture
def driver() -> MagicMock:
    """Create a mock WebDriver with no frames."""
    mock = MagicMock()
    mock.find_elements.return_value = []
    mock.current_url = "https://example.test/"
    return mock


@pytest.fixture
def page(driver: MagicMock) -> SeleniumPage:
    return SeleniumPage(driver)


class TestWithRetry:
    """Tests for the with_retry decorator."""

    def test_retries_then_succeeds(self) -> None:
        """Test that a transient failure is retried."""
        calls = {"n": 0}

        @with_retry(max_attempts=3, exceptions=(StaleElementReferenceException,))
        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 2:
                raise StaleElementReferenceException("stale")
            return "ok"

        with patch("slotwatch.providers.selenium_page.time_module.sleep") as mock_sleep:
            assert flaky() == "ok"

        assert calls["n"] == 2
        mock_sleep.assert_called_once_with(0.5)

    def test_raises_after_max_attempts(self) -> None:
        """Test that the last exception is raised once attempts are exhausted."""

        @with_retry(max_attempts=3, exceptions=(StaleElementReferenceException,))
        def always_stale() -> None:
            raise StaleElementReferenceException("stale")

        with patch("slotwatch.providers.selenium_page.time_module.sleep") as mock_sleep:
            with pytest.raises(StaleElementReferenceException):
                always_stale()

        assert mock_sleep.call_args_list == [call(0.5), call(1.0)]

    def test_other_exceptions_not_retried(self) -> None:
        """Test that exceptions outside the list propagate immediately."""
        calls = {"n": 0}

        @with_retry(exceptions=(StaleElementReferenceException,))
        def broken() -> None:
            calls["n"] += 1
            raise ValueError("bad")

        with pytest.raises(ValueError):
            broken()
        assert calls["n"] == 1


class TestNavigationAndContexts:
    """Tests for goto and frame enumeration."""

    def test_goto_timeout_maps_to_navigation_timeout(
        self, page: SeleniumPage, driver: MagicMock
    ) -> None:
        """Test that a page-load timeout raises NavigationTimeout."""
        driver.get.side_effect = TimeoutException("slow")
        with pytest.raises(NavigationTimeout) as exc_info:
            page.goto("https://slow.test/", 45.0)
        assert exc_info.value.url == "https://slow.test/"
        driver.set_page_load_timeout.assert_called_once_with(45.0)

    def test_contexts_without_frames(self, page: SeleniumPage) -> None:
        """Test that a frameless page has only the top document."""
        assert page.contexts() == [()]

    def test_contexts_with_nested_frame(self, page: SeleniumPage, driver: MagicMock) -> None:
        """Test that frames are enumerated as index paths, parents first."""
        frame = MagicMock()
        driver.find_elements.side_effect = [[frame], [frame], []]
        assert page.contexts() == [(), (0,)]
        driver.switch_to.frame.assert_called_once_with(frame)


class TestElements:
    """Tests for element collection and activation."""

    def test_collect_elements_builds_descriptors(
        self, page: SeleniumPage, driver: MagicMock
    ) -> None:
        """Test that script results become ElementInfo objects in the given context."""
        element = MagicMock()
        driver.execute_script.return_value = [
            {
                "element": element,
                "index": 0,
                "tag": "a",
                "text": "検索",
                "title": "",
                "aria_label": "",
                "alt": "",
                "value": "",
                "role": "",
                "input_type": "",
                "has_href": True,
                "has_onclick": False,
                "pointer_cursor": False,
                "visible": True,
            }
        ]

        infos = page.collect_elements((), ["a"], ["検索"])

        assert len(infos) == 1
        assert infos[0].element is element
        assert infos[0].context == ()
        assert infos[0].has_href is True

    def test_click_falls_back_to_synthetic_event(
        self, page: SeleniumPage, driver: MagicMock
    ) -> None:
        """Test that an intercepted native click dispatches a synthetic click."""
        element = MagicMock()
        element.click.side_effect = ElementClickInterceptedException("overlay")
        info = ElementInfo(element=element, context=(), tag="button", text="検索")

        page.click(info)

        driver.execute_script.assert_called_with(SYNTHETIC_CLICK_SCRIPT, element)

    def test_fill_replaces_input_value(self, page: SeleniumPage, driver: MagicMock) -> None:
        """Test that fill clears the located input before typing."""
        field = MagicMock()
        driver.find_elements.side_effect = (
            lambda by, selector: [field] if selector == "input[type=text]" else []
        )
        driver.find_element.return_value = field

        assert page.fill("input[type=text]", "テニスコート") is True

        field.clear.assert_called_once()
        field.send_keys.assert_called_once_with("テニスコート")

    def test_fill_without_input(self, page: SeleniumPage) -> None:
        """Test that a page without the input reports False."""
        assert page.fill("input[type=text]", "テニスコート") is False


class TestObservation:
    """Tests for snapshots and waits."""

    def test_snapshot(self, page: SeleniumPage, driver: MagicMock) -> None:
        """Test that the snapshot combines document id, URL and labels."""

        def execute(script: str, *args: object) -> object:
            if script == DOCUMENT_ID_SCRIPT:
                return ["doc1", "complete"]
            if script == LABELS_SCRIPT:
                return ["検索", "次へ"]
            return None

        driver.execute_script.side_effect = execute

        snap = page.snapshot()

        assert snap.url == "https://example.test/"
        assert snap.document_id == "doc1"
        assert snap.ready is True
        assert snap.labels == frozenset({"検索", "次へ"})

    def test_wait_for_selector_in_top_document(
        self, page: SeleniumPage, driver: MagicMock
    ) -> None:
        """Test that a match in the top document ends the wait and is remembered."""
        region = MagicMock()
        driver.find_elements.side_effect = lambda by, selector: [region] if selector == "#cal" else []
        driver.find_element.return_value = region
        driver.execute_script.return_value = "01/05 空き"

        page.wait_for_selector("#cal", 5.0)

        assert page.read_text("#cal") == "01/05 空き"

    def test_wait_for_selector_timeout(self, page: SeleniumPage) -> None:
        """Test that a missing region raises SelectorTimeout."""
        with pytest.raises(SelectorTimeout):
            page.wait_for_selector("#missing", 0)

    def test_close_quits_driver(self, page: SeleniumPage, driver: MagicMock) -> None:
        """Test that close quits the browser."""
        page.close()
        driver.quit.assert_called_once()
