"""
Date-windowed availability detection over flattened page text.

Calendar widgets on reservation sites give no structured date-to-status
mapping, so detection works on proximity: every target date is rendered into
the literal forms such sites print, and a fixed-size window of text around
each occurrence is tested for a vacancy keyword.

Windows around adjacent dates may overlap, so one vacancy marker can be
attributed to a neighbouring date. This imprecision is accepted.

Slot details come from the row that follows a date occurrence: the text up to
the next date-like token. Each time range in the row starts a cell, and a cell
holding a vacancy keyword or an apply control is one open slot.
"""

import calendar
import re
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime, timedelta

import pytz

from slotwatch.models.schemas import APPLY_MARKERS, DEFAULT_KEYWORDS, OpenSlot
from slotwatch.navigation.text import normalize

JP_WEEKDAYS = ("月", "火", "水", "木", "金", "土", "日")
SUNDAY = 6
DEFAULT_WINDOW = 140

_TILDE_RE = re.compile(r"[～〜~]")
_TIME_RANGE_RE = re.compile(r"([01]?\d|2[0-3]):(\d{2})\s*-\s*([01]?\d|2[0-3]):(\d{2})")
_COURT_RE = re.compile(r"コート\s*[A-Za-z0-9]+|面\s*[A-Za-z]")
# Digits glued to a token belong to another number (12/25 is not 2/2), and a
# colon marks a clock time (9:00-11:00 holds no date 00-11).
_DATE_LIKE_RE = re.compile(r"(?<![\d:])\d{1,2}(?:[/-]\d{1,2}|月\d{1,2}日)(?![\d:])")


def horizon_end(today: date) -> date:
    """Last day of the month after next."""
    year, month = today.year, today.month + 2
    if month > 12:
        year, month = year + 1, month - 12
    return date(year, month, calendar.monthrange(year, month)[1])


def target_dates(today: date, weekday: int = SUNDAY) -> list[date]:
    """Every date from today through the horizon end that falls on `weekday`."""
    first = today + timedelta(days=(weekday - today.weekday()) % 7)
    end = horizon_end(today)
    dates = []
    current = first
    while current <= end:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def date_tokens(d: date) -> list[str]:
    """Literal renderings of a date as printed by reservation calendars."""
    m, dd = d.month, d.day
    marker = JP_WEEKDAYS[d.weekday()]
    bases = [
        f"{m:02d}/{dd:02d}",
        f"{m}/{dd}",
        f"{m:02d}-{dd:02d}",
        f"{m}-{dd}",
        f"{m}月{dd}日",
    ]
    tokens: list[str] = []
    for base in bases:
        tokens.extend([f"{base}({marker})", f"{base}（{marker}）", base])
    return list(dict.fromkeys(tokens))


def keyword_pattern(keywords: Sequence[str]) -> re.Pattern[str] | None:
    alternatives = [re.escape(normalize(k)) for k in keywords if normalize(k)]
    if not alternatives:
        return None
    return re.compile("|".join(alternatives), re.IGNORECASE)


def iter_occurrences(text: str, token: str) -> Iterator[re.Match[str]]:
    """Occurrences of `token` that are not part of a longer number."""
    return re.finditer(rf"(?<![\d:]){re.escape(token)}(?![\d:])", text)


def row_after(text: str, end: int, window: int) -> str:
    """Text following a date occurrence, up to the next date-like token or `window` chars."""
    limit = min(len(text), end + window)
    following = _DATE_LIKE_RE.search(text, end, limit)
    return text[end : following.start() if following else limit]


def _format_time_range(match: re.Match[str]) -> str:
    h1, m1, h2, m2 = match.groups()
    return f"{int(h1):02d}:{m1}-{int(h2):02d}:{m2}"


def pick_time_range(text: str) -> str:
    """Extract the first time range, e.g. "9:00～11:00" -> "09:00-11:00"."""
    match = _TIME_RANGE_RE.search(_TILDE_RE.sub("-", text))
    return _format_time_range(match) if match else ""


def pick_court(text: str) -> str:
    match = _COURT_RE.search(text)
    return match.group(0).replace(" ", "") if match else ""


def _last_court(text: str) -> str:
    matches = list(_COURT_RE.finditer(text))
    return matches[-1].group(0).replace(" ", "") if matches else ""


def split_cells(row: str) -> list[tuple[str, str, str]]:
    """
    Split a row into (time range, court, cell text), one entry per time range.

    A cell runs from its time range to the next one. Its court is the nearest
    court label before the time range in the row, else the first one inside
    the cell.
    """
    matches = list(_TIME_RANGE_RE.finditer(_TILDE_RE.sub("-", row)))
    cells = []
    for i, match in enumerate(matches):
        stop = matches[i + 1].start() if i + 1 < len(matches) else len(row)
        cell = row[match.start() : stop]
        court = _last_court(row[: match.start()]) or pick_court(cell)
        cells.append((_format_time_range(match), court, cell))
    return cells


def _found(pattern: re.Pattern[str] | None, text: str) -> bool:
    return pattern is not None and pattern.search(text) is not None


def _occurrences(
    flat: str, dates: Sequence[date], window: int
) -> Iterator[tuple[date, str, str]]:
    """Yield (date, surrounding window, following row) for every target-date occurrence."""
    for d in dates:
        for token in date_tokens(d):
            for match in iter_occurrences(flat, token):
                excerpt = flat[max(0, match.start() - window) : match.end() + window]
                yield d, excerpt, row_after(flat, match.end(), window)


def find_open_slots(
    text: str,
    keywords: Sequence[str] = DEFAULT_KEYWORDS,
    dates: Sequence[date] = (),
    window: int = DEFAULT_WINDOW,
    apply_markers: Sequence[str] = APPLY_MARKERS,
) -> list[OpenSlot]:
    """
    Return one OpenSlot per (date, time range, court) found open.

    Every open cell of a date's row is its own slot. When the window is open
    but no cell is (a marker outside any time range, or a row without times),
    one slot with an empty time range stands for the date.
    """
    pattern = keyword_pattern(keywords)
    apply_pattern = keyword_pattern(apply_markers)
    flat = normalize(text)
    if not flat or (pattern is None and apply_pattern is None):
        return []

    slots: dict[tuple[date, str, str], OpenSlot] = {}
    for d, excerpt, row in _occurrences(flat, dates, window):
        found = [
            OpenSlot(date=d, time_range=time_range, court=court, window=cell)
            for time_range, court, cell in split_cells(row)
            if _found(pattern, cell) or _found(apply_pattern, cell)
        ]
        if not found and (_found(pattern, excerpt) or _found(apply_pattern, row)):
            found = [OpenSlot(date=d, court=pick_court(row), window=excerpt)]
        for slot in found:
            slots.setdefault((slot.date, slot.time_range, slot.court), slot)
    return sorted(slots.values(), key=lambda s: (s.date, s.time_range, s.court))


def is_open_on_target_days(
    text: str,
    keywords: Sequence[str] = DEFAULT_KEYWORDS,
    dates: Sequence[date] = (),
    window: int = DEFAULT_WINDOW,
    apply_markers: Sequence[str] = APPLY_MARKERS,
) -> bool:
    """True when a target-date window holds a keyword or its row offers an apply control."""
    pattern = keyword_pattern(keywords)
    apply_pattern = keyword_pattern(apply_markers)
    flat = normalize(text)
    if not flat or (pattern is None and apply_pattern is None):
        return False
    return any(
        _found(pattern, excerpt) or _found(apply_pattern, row)
        for _, excerpt, row in _occurrences(flat, dates, window)
    )


def filter_slots(
    slots: Iterable[OpenSlot],
    times: Sequence[str] | None = None,
    courts: Sequence[str] | None = None,
) -> list[OpenSlot]:
    """
    Keep slots whose time range is one of `times` and whose court contains one of `courts`.

    An empty or missing filter keeps everything. Slots without a time range
    (or court) never pass a non-empty time (or court) filter.
    """
    kept = list(slots)
    if times:
        wanted = {pick_time_range(t) or normalize(t) for t in times}
        kept = [s for s in kept if s.time_range in wanted]
    labels = [normalize(c).replace(" ", "") for c in courts or () if normalize(c)]
    if labels:
        kept = [s for s in kept if any(label in s.court for label in labels)]
    return kept


class AvailabilityService:
    """Applies the weekday/keyword policy in the facility's local calendar."""

    def __init__(
        self,
        timezone: str = "Asia/Tokyo",
        weekday: int = SUNDAY,
        window: int = DEFAULT_WINDOW,
        apply_markers: Sequence[str] = APPLY_MARKERS,
    ) -> None:
        self.timezone = timezone
        self.weekday = weekday
        self.window = window
        self.apply_markers = tuple(apply_markers)

    def today(self) -> date:
        return datetime.now(pytz.timezone(self.timezone)).date()

    def dates(self, today: date | None = None) -> list[date]:
        return target_dates(today or self.today(), self.weekday)

    def is_open(self, text: str, keywords: Sequence[str], today: date | None = None) -> bool:
        return is_open_on_target_days(
            text, keywords, self.dates(today), self.window, self.apply_markers
        )

    def open_slots(
        self,
        text: str,
        keywords: Sequence[str],
        today: date | None = None,
        times: Sequence[str] | None = None,
        courts: Sequence[str] | None = None,
    ) -> list[OpenSlot]:
        slots = find_open_slots(text, keywords, self.dates(today), self.window, self.apply_markers)
        return filter_slots(slots, times, courts)
