"""
Semantic element resolution across page contexts.

Sites checked by SlotWatch expose no stable automation hooks, so controls are
located by their visible label. A node qualifies when its normalized text,
title, aria-label, alt or value contains one of the normalized queries; among
qualifying visible nodes the one with the most "clickable" semantics wins.
"""

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from slotwatch.navigation.text import normalize
from slotwatch.providers.base import DEFAULT_TAGS, ElementInfo, PageDriver

logger = logging.getLogger(__name__)

TAG_SCORES = {
    "a_href": 100,
    "button": 90,
    "role_button": 80,
    "media": 60,
    "choice": 50,
    "a": 40,
    "container": 10,
}
HREF_BONUS = 15
ONCLICK_BONUS = 10
POINTER_BONUS = 5
EXACT_LABEL_BONUS = 5

# Generic containers with more text than this wrap other content, not a control.
MAX_CONTAINER_TEXT = 100


@dataclass
class Candidate:
    info: ElementInfo
    matched_text: str
    score: int

    @property
    def element_ref(self) -> object:
        return self.info.element


TieBreaker = Callable[[list[Candidate]], Candidate]


def first_tie_breaker(tied: list[Candidate]) -> Candidate:
    """Pick the first top-scoring candidate in traversal order."""
    return tied[0]


def random_tie_breaker(tied: list[Candidate]) -> Candidate:
    """Pick any top-scoring candidate, so header duplicates are not always preferred."""
    return random.choice(tied)


def base_score(info: ElementInfo) -> int:
    tag = info.tag.lower()
    if tag == "a":
        return TAG_SCORES["a_href"] if info.has_href else TAG_SCORES["a"]
    if tag == "button" or (tag == "input" and info.input_type in ("submit", "button", "image")):
        return TAG_SCORES["button"]
    if info.role.lower() == "button":
        return TAG_SCORES["role_button"]
    if tag in ("img", "area"):
        return TAG_SCORES["media"]
    if tag in ("option", "label"):
        return TAG_SCORES["choice"]
    return TAG_SCORES["container"]


def is_container(info: ElementInfo) -> bool:
    return base_score(info) == TAG_SCORES["container"]


def score_element(info: ElementInfo, matched_label: str, query: str) -> int:
    score = base_score(info)
    if info.has_href:
        score += HREF_BONUS
    if info.has_onclick:
        score += ONCLICK_BONUS
    if info.pointer_cursor:
        score += POINTER_BONUS
    if matched_label == query:
        score += EXACT_LABEL_BONUS
    return score


def match_element(info: ElementInfo, queries: Sequence[str]) -> tuple[str, str] | None:
    """Return (normalized label, normalized query) for the first label containing a query."""
    for raw_label in info.labels:
        label = normalize(raw_label)
        if not label:
            continue
        for query in queries:
            if query and query in label:
                return label, query
    return None


def rank_elements(infos: Sequence[ElementInfo], queries: Sequence[str]) -> list[Candidate]:
    """Score every qualifying visible element, keeping traversal order."""
    normalized = [normalize(q) for q in queries]
    candidates: list[Candidate] = []
    for info in infos:
        if not info.visible:
            continue
        matched = match_element(info, normalized)
        if matched is None:
            continue
        label, query = matched
        if is_container(info) and len(label) > MAX_CONTAINER_TEXT:
            continue
        candidates.append(Candidate(info=info, matched_text=label, score=score_element(info, label, query)))
    return candidates


def pick_best(candidates: list[Candidate], tie_breaker: TieBreaker = first_tie_breaker) -> Candidate | None:
    if not candidates:
        return None
    top = max(c.score for c in candidates)
    tied = [c for c in candidates if c.score == top]
    return tie_breaker(tied) if len(tied) > 1 else tied[0]


class ElementResolver:
    """
    Finds the best clickable candidate for a set of text queries.

    Contexts are searched in the order the page reports them (main document
    first, then frames depth-first). Resolution stops at the first context
    yielding any qualifying candidate; candidates are never merged across
    contexts.
    """

    def __init__(self, tie_breaker: TieBreaker = first_tie_breaker) -> None:
        self.tie_breaker = tie_breaker

    def resolve(
        self,
        page: PageDriver,
        queries: Sequence[str],
        tags: Sequence[str] | None = None,
    ) -> Candidate | None:
        tags = tuple(tags or DEFAULT_TAGS)
        normalized = [normalize(q) for q in queries]
        for context in page.contexts():
            infos = page.collect_elements(context, tags, normalized)
            candidates = rank_elements(infos, normalized)
            if not candidates:
                continue
            best = pick_best(candidates, self.tie_breaker)
            logger.debug(
                f"Resolved {list(queries)} to <{best.info.tag}> '{best.matched_text[:40]}' "
                f"score={best.score} among {len(candidates)} candidates"
            )
            return best
        logger.debug(f"No candidate for {list(queries)} in any context")
        return None
