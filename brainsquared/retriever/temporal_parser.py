"""
Temporal Expression Parser

Turns a natural-language query into an optional time window plus the topic
left over once the time phrase and question boilerplate are removed.

"What was I reading about robotics 4 weeks ago?"
    -> window: 4 weeks ago (one week, starting 28 days before now)
    -> topic:  "reading about robotics"

The vocabulary is an ordered tuple of TemporalRule entries; the first rule
whose pattern matches builds the window. Adding a phrase means adding a rule.
All windows are computed in local time and expressed in epoch milliseconds.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Tuple

from ..common.schemas import TimeWindow

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS

# Written numbers, including articles ("a week ago")
NUMBER_WORDS = {
    "a": 1, "an": 1,
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12,
}

_NUMBER = r"(a|an|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|\d+)"
_AGO_PREFIX = r"(?:around\s+)?(?:about\s+)?"
_LAST_PREFIX = r"(?:in\s+the\s+)?"

# Question starters removed from the topic alongside the time phrase
BOILERPLATE_PATTERNS = (
    re.compile(r"\bwhat\s+(?:was|were)\s+i\b", re.IGNORECASE),
    re.compile(r"\bwhat\s+did\s+i\b", re.IGNORECASE),
    re.compile(r"\bshow\s+me\b", re.IGNORECASE),
    re.compile(r"\bfind\b", re.IGNORECASE),
)

# Broader than the rules: decides whether a query is time-anchored at all
TEMPORAL_DETECTOR = re.compile(
    r"\b(?:today|yesterday|ago"
    r"|(?:this|last)\s+(?:week|month)"
    r"|last\s+\S+\s+(?:days?|weeks?|months?))\b",
    re.IGNORECASE,
)

MIN_TOPIC_LENGTH = 2

# Counts above this are treated as "since the epoch"
MAX_COUNT = 100_000

# Local-time epoch; no window starts earlier
EPOCH = datetime.fromtimestamp(0)


# ============================================================================
# Time arithmetic
# ============================================================================

def _to_ms(moment: datetime) -> int:
    return int(round(moment.timestamp() * 1000))


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def _shift_months(moment: datetime, months: int) -> datetime:
    """Move by whole calendar months, clamping the day to the target month.

    Shifts that would land before the Unix epoch return the epoch itself.
    """
    index = moment.year * 12 + (moment.month - 1) + months
    if index < EPOCH.year * 12 + (EPOCH.month - 1):
        return EPOCH
    year, month = divmod(index, 12)
    month += 1
    next_month = datetime(year + (month == 12), month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def _start_of_week(moment: datetime) -> datetime:
    """Most recent Sunday, 00:00."""
    days_since_sunday = (moment.weekday() + 1) % 7
    return _start_of_day(moment) - timedelta(days=days_since_sunday)


def _count(match: "re.Match") -> int:
    token = match.group(1).lower()
    if token in NUMBER_WORDS:
        return NUMBER_WORDS[token]
    if len(token) > len(str(MAX_COUNT)):
        return MAX_COUNT
    return min(int(token), MAX_COUNT)


def _ms_before(end_ms: int, span_ms: int) -> int:
    return max(0, end_ms - span_ms)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


# ============================================================================
# Window builders
# ============================================================================

def _today(match, now: datetime) -> TimeWindow:
    return TimeWindow(start=_to_ms(_start_of_day(now)), end=_to_ms(now), label="today")


def _yesterday(match, now: datetime) -> TimeWindow:
    day = now - timedelta(days=1)
    return TimeWindow(
        start=_to_ms(_start_of_day(day)),
        end=_to_ms(_end_of_day(day)),
        label="yesterday",
    )


def _this_week(match, now: datetime) -> TimeWindow:
    return TimeWindow(start=_to_ms(_start_of_week(now)), end=_to_ms(now), label="this week")


def _last_week(match, now: datetime) -> TimeWindow:
    start = _start_of_week(now) - timedelta(days=7)
    end = _end_of_day(start + timedelta(days=6))
    return TimeWindow(start=_to_ms(start), end=_to_ms(end), label="last week")


def _this_month(match, now: datetime) -> TimeWindow:
    start = _start_of_day(now.replace(day=1))
    return TimeWindow(start=_to_ms(start), end=_to_ms(now), label="this month")


def _last_month(match, now: datetime) -> TimeWindow:
    first_of_this_month = _start_of_day(now.replace(day=1))
    start = _shift_months(first_of_this_month, -1)
    end = _end_of_day(first_of_this_month - timedelta(days=1))
    return TimeWindow(start=_to_ms(start), end=_to_ms(end), label="last month")


def _days_ago(match, now: datetime) -> TimeWindow:
    days = _count(match)
    start = _ms_before(_to_ms(now), days * DAY_MS)
    return TimeWindow(start=start, end=start + DAY_MS, label=f"{_plural(days, 'day')} ago")


def _weeks_ago(match, now: datetime) -> TimeWindow:
    weeks = _count(match)
    start = _ms_before(_to_ms(now), weeks * WEEK_MS)
    return TimeWindow(start=start, end=start + WEEK_MS, label=f"{_plural(weeks, 'week')} ago")


def _months_ago(match, now: datetime) -> TimeWindow:
    months = _count(match)
    start = _shift_months(now, -months)
    end = _shift_months(start, 1)
    return TimeWindow(
        start=_to_ms(start),
        end=_to_ms(end),
        label=f"{_plural(months, 'month')} ago",
    )


def _last_days(match, now: datetime) -> TimeWindow:
    days = _count(match)
    end = _to_ms(now)
    return TimeWindow(start=_ms_before(end, days * DAY_MS), end=end, label=f"last {_plural(days, 'day')}")


def _last_weeks(match, now: datetime) -> TimeWindow:
    weeks = _count(match)
    end = _to_ms(now)
    return TimeWindow(start=_ms_before(end, weeks * WEEK_MS), end=end, label=f"last {_plural(weeks, 'week')}")


def _last_months(match, now: datetime) -> TimeWindow:
    months = _count(match)
    return TimeWindow(
        start=_to_ms(_shift_months(now, -months)),
        end=_to_ms(now),
        label=f"last {_plural(months, 'month')}",
    )


# ============================================================================
# Vocabulary
# ============================================================================

@dataclass(frozen=True)
class TemporalRule:
    """One recognized time phrase and the window it maps to."""
    name: str
    pattern: "re.Pattern"
    build: Callable[["re.Match", datetime], TimeWindow]


def _rule(name: str, pattern: str, build) -> TemporalRule:
    return TemporalRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), build=build)


# Evaluated top to bottom; first match wins
DEFAULT_RULES: Tuple[TemporalRule, ...] = (
    _rule("today", r"\btoday\b", _today),
    _rule("yesterday", r"\byesterday\b", _yesterday),
    _rule("this_week", r"\bthis\s+week\b", _this_week),
    _rule("last_week", r"\blast\s+week\b", _last_week),
    _rule("this_month", r"\bthis\s+month\b", _this_month),
    _rule("last_month", r"\blast\s+month\b", _last_month),
    _rule("days_ago", rf"\b{_AGO_PREFIX}{_NUMBER}\s+days?\s+ago\b", _days_ago),
    _rule("weeks_ago", rf"\b{_AGO_PREFIX}{_NUMBER}\s+weeks?\s+ago\b", _weeks_ago),
    _rule("months_ago", rf"\b{_AGO_PREFIX}{_NUMBER}\s+months?\s+ago\b", _months_ago),
    _rule("last_days", rf"\b{_LAST_PREFIX}last\s+{_NUMBER}\s+days?\b", _last_days),
    _rule("last_weeks", rf"\b{_LAST_PREFIX}last\s+{_NUMBER}\s+weeks?\b", _last_weeks),
    _rule("last_months", rf"\b{_LAST_PREFIX}last\s+{_NUMBER}\s+months?\b", _last_months),
)


@dataclass
class ParsedTemporal:
    """Result of temporal parsing"""
    original: str
    topic: str
    window: Optional[TimeWindow] = None
    rule: Optional[str] = None

    @property
    def has_window(self) -> bool:
        return self.window is not None

    @property
    def topic_too_short(self) -> bool:
        return len(self.topic) < MIN_TOPIC_LENGTH


class TemporalParser:
    """
    Parses time expressions out of history queries.

    Safe to call on any query: without a recognized phrase the window is
    None and the topic is the trimmed query.
    """

    def __init__(
        self,
        rules: Sequence[TemporalRule] = DEFAULT_RULES,
        detector: "re.Pattern" = TEMPORAL_DETECTOR,
    ):
        self._rules = tuple(rules)
        self._detector = detector

    @property
    def rules(self) -> Tuple[TemporalRule, ...]:
        return self._rules

    def is_temporal(self, query: str) -> bool:
        """Whether the query should take the time-window path"""
        return bool(self._detector.search(query or ""))

    def parse(self, query: str, now: Optional[datetime] = None) -> ParsedTemporal:
        """
        Parse a query into (window, topic).

        Args:
            query: Raw user query
            now: Anchor time (local, naive); defaults to the current time

        Returns:
            ParsedTemporal with window set when a rule matched
        """
        original = query or ""
        trimmed = original.strip()
        now = now or datetime.now()

        for rule in self._rules:
            match = rule.pattern.search(trimmed)
            if match:
                return ParsedTemporal(
                    original=original,
                    topic=self.extract_topic(trimmed),
                    window=rule.build(match, now),
                    rule=rule.name,
                )

        return ParsedTemporal(original=original, topic=trimmed)

    def extract_topic(self, query: str) -> str:
        """Remove time phrases and question boilerplate"""
        topic = query
        for rule in self._rules:
            topic = rule.pattern.sub(" ", topic)
        for pattern in BOILERPLATE_PATTERNS:
            topic = pattern.sub(" ", topic)

        topic = re.sub(r"\s+", " ", topic)
        topic = re.sub(r"^[\s?.!,;:]+|[\s?.!,;:]+$", "", topic)
        return topic


_default_parser = TemporalParser()


def parse_temporal(query: str, now: Optional[datetime] = None) -> ParsedTemporal:
    """Parse with the default vocabulary"""
    return _default_parser.parse(query, now=now)


def is_temporal_query(query: str) -> bool:
    """Classify with the default detector"""
    return _default_parser.is_temporal(query)
