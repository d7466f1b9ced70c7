"""
Tests for the element resolver in slotwatch/navigation/resolver.py.

Pages are modelled with FakePage, so scoring, visibility and context
ordering are exercised without a browser.
"""

from unittest.mock import patch

import pytest

from slotwatch.navigation.resolver import (
    Candidate,
    ElementResolver,
    base_score,
    first_tie_breaker,
    pick_best,
    random_tie_breaker,
    rank_elements,
)
from slotwatch.providers.base import DEFAULT_TAGS, ElementInfo
from tests.fixtures.fake_page import FakePage

SEARCH_PAGE = """
<html><body>
  <header><a id="nav-search" href="/search">検索</a></header>
  <form><button id="form-search" type="submit">検索</button></form>
</body></html>
"""

DUPLICATE_BUTTONS = """
<html><body>
  <header><button id="header-search">検索</button></header>
  <form><button id="form-search">検索</button></form>
</body></html>
"""


def _info(tag: str, **kwargs: object) -> ElementInfo:
    return ElementInfo(element=object(), context=0, tag=tag, **kwargs)  # type: ignore[arg-type]


class TestBaseScore:
    """Tests for tag-semantics scoring."""

    def test_anchor_with_href_highest(self) -> None:
        """Test that anchors with href outrank buttons."""
        assert base_score(_info("a", has_href=True)) > base_score(_info("button"))

    def test_button_beats_role_button(self) -> None:
        """Test that native buttons outrank role=button containers."""
        assert base_score(_info("button")) > base_score(_info("div", role="button"))

    def test_submit_input_scores_as_button(self) -> None:
        """Test that input type=submit scores like a button."""
        assert base_score(_info("input", input_type="submit")) == base_score(_info("button"))

    def test_ordering_of_remaining_tags(self) -> None:
        """Test media > option/label > generic container."""
        assert base_score(_info("img")) > base_score(_info("label"))
        assert base_score(_info("option")) > base_score(_info("span"))
        assert base_score(_info("div", role="button")) > base_score(_info("img"))


class TestRankElements:
    """Tests for matching and bonus scoring."""

    def test_matches_title_aria_and_alt(self) -> None:
        """Test that non-text labels are matched."""
        infos = [
            _info("img", alt="次へ"),
            _info("a", aria_label="次へ", has_href=True),
            _info("span", title="次へ"),
        ]
        ranked = rank_elements(infos, ["次へ"])
        assert len(ranked) == 3

    def test_fullwidth_query_matches_halfwidth_text(self) -> None:
        """Test that queries and labels are compared after normalization."""
        ranked = rank_elements([_info("button", text="コートA")], ["コートＡ"])
        assert len(ranked) == 1
        assert ranked[0].matched_text == "コートA"

    def test_invisible_elements_skipped(self) -> None:
        """Test that hidden elements never qualify."""
        assert rank_elements([_info("button", text="検索", visible=False)], ["検索"]) == []

    def test_bonuses_added(self) -> None:
        """Test onclick and pointer-cursor bonuses."""
        plain = rank_elements([_info("span", text="予約")], ["予約"])[0]
        rich = rank_elements(
            [_info("span", text="予約", has_onclick=True, pointer_cursor=True)], ["予約"]
        )[0]
        assert rich.score > plain.score

    def test_large_containers_skipped(self) -> None:
        """Test that generic containers wrapping lots of text do not qualify."""
        big = _info("div", text="検索 " + "x" * 200)
        assert rank_elements([big], ["検索"]) == []

    def test_substring_match(self) -> None:
        """Test that labels containing the query qualify."""
        ranked = rank_elements([_info("a", text="施設を検索する", has_href=True)], ["検索"])
        assert len(ranked) == 1


class TestPickBest:
    """Tests for tie-breaking policies."""

    def _tied(self) -> list[Candidate]:
        return [
            Candidate(info=_info("button", index=i), matched_text="検索", score=90)
            for i in range(3)
        ]

    def test_first_tie_breaker_is_stable(self) -> None:
        """Test that the default policy picks the first tied candidate."""
        tied = self._tied()
        assert pick_best(tied) is tied[0]
        assert first_tie_breaker(tied) is tied[0]

    def test_random_tie_breaker_uses_random_choice(self) -> None:
        """Test that the random policy delegates to random.choice."""
        tied = self._tied()
        with patch("slotwatch.navigation.resolver.random.choice", return_value=tied[2]):
            assert pick_best(tied, random_tie_breaker) is tied[2]

    def test_tie_breaker_only_sees_top_tier(self) -> None:
        """Test that lower-scored candidates are never passed to the tie-breaker."""
        low = Candidate(info=_info("span"), matched_text="検索", score=10)
        tied = self._tied()
        seen: list[list[Candidate]] = []

        def spy(candidates: list[Candidate]) -> Candidate:
            seen.append(candidates)
            return candidates[-1]

        assert pick_best([low, *tied], spy) is tied[-1]
        assert seen == [tied]

    def test_empty(self) -> None:
        """Test that no candidates yields None."""
        assert pick_best([]) is None


class TestElementResolver:
    """Tests for ElementResolver.resolve against fake pages."""

    def test_higher_scored_anchor_wins(self) -> None:
        """Test that the href anchor outranks the form button."""
        page = FakePage(SEARCH_PAGE)
        best = ElementResolver().resolve(page, ["検索"])
        assert best is not None
        assert best.info.element["id"] == "nav-search"

    def test_tag_allow_list_restricts_candidates(self) -> None:
        """Test that a button-only allow-list selects the in-form button."""
        page = FakePage(SEARCH_PAGE)
        best = ElementResolver().resolve(page, ["検索"], tags=("button",))
        assert best is not None
        assert best.info.element["id"] == "form-search"

    def test_tied_duplicates_default_to_first(self) -> None:
        """Test that tied duplicates resolve to the first in document order."""
        page = FakePage(DUPLICATE_BUTTONS)
        best = ElementResolver().resolve(page, ["検索"])
        assert best is not None
        assert best.info.element["id"] == "header-search"

    def test_tied_duplicates_with_injected_tie_breaker(self) -> None:
        """Test that an injected tie-break can select the in-content duplicate."""
        page = FakePage(DUPLICATE_BUTTONS)
        resolver = ElementResolver(tie_breaker=lambda tied: tied[-1])
        best = resolver.resolve(page, ["検索"])
        assert best is not None
        assert best.info.element["id"] == "form-search"

    def test_random_policy_can_return_either_duplicate(self) -> None:
        """Test that the random policy may pick either tied element."""
        page = FakePage(DUPLICATE_BUTTONS)
        resolver = ElementResolver(tie_breaker=random_tie_breaker)
        picked = set()
        for choice in (0, 1):
            with patch(
                "slotwatch.navigation.resolver.random.choice",
                side_effect=lambda tied, i=choice: tied[i],
            ):
                best = resolver.resolve(page, ["検索"])
                assert best is not None
                picked.add(best.info.element["id"])
        assert picked == {"header-search", "form-search"}

    def test_hidden_duplicate_ignored(self) -> None:
        """Test that a hidden element is never chosen."""
        page = FakePage(
            '<a id="hidden" href="/x" style="display: none">検索</a>'
            '<button id="shown">検索</button>'
        )
        best = ElementResolver().resolve(page, ["検索"])
        assert best is not None
        assert best.info.element["id"] == "shown"

    def test_searches_frames_when_main_has_no_match(self) -> None:
        """Test that nested frames are searched after the main document."""
        page = FakePage("<p>menu</p>", frames=['<a id="in-frame" href="/c">予約状況</a>'])
        best = ElementResolver().resolve(page, ["予約状況"])
        assert best is not None
        assert best.info.context == 1

    def test_stops_at_first_context_with_candidates(self) -> None:
        """Test that candidates are not merged across contexts."""
        page = FakePage(
            '<span id="weak">空き状況</span>',
            frames=['<a id="strong" href="/c">空き状況</a>'],
        )
        best = ElementResolver().resolve(page, ["空き状況"])
        assert best is not None
        assert best.info.element["id"] == "weak"

    def test_any_query_matches(self) -> None:
        """Test that several queries are accepted."""
        page = FakePage('<button id="b">さがす</button>')
        best = ElementResolver().resolve(page, ["検索", "さがす"])
        assert best is not None
        assert best.info.element["id"] == "b"

    @pytest.mark.parametrize("queries", [["存在しない"], []])
    def test_not_found(self, queries: list[str]) -> None:
        """Test that no match returns None."""
        page = FakePage(SEARCH_PAGE)
        assert ElementResolver().resolve(page, queries) is None

    def test_default_tags_cover_generic_containers(self) -> None:
        """Test that the default allow-list includes generic containers."""
        assert "div" in DEFAULT_TAGS and "span" in DEFAULT_TAGS
