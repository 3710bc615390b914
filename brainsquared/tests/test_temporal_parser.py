"""
Tests for the temporal expression parser

Windows are computed against a fixed local "now" so results are stable.
"""

import pytest
from datetime import datetime


NOW = datetime(2025, 6, 18, 14, 30)  # Wednesday


def _ms(moment: datetime) -> int:
    return int(round(moment.timestamp() * 1000))


class TestTopicExtraction:
    """Time phrase and boilerplate removal"""

    @pytest.fixture
    def parser(self):
        from brainsquared.retriever.temporal_parser import TemporalParser
        return TemporalParser()

    def test_weeks_ago_query(self, parser):
        result = parser.parse("What was I reading about robotics 4 weeks ago?", now=NOW)

        assert result.topic == "reading about robotics"
        assert result.window.label == "4 weeks ago"
        assert result.rule == "weeks_ago"

    def test_show_me_prefix_removed(self, parser):
        result = parser.parse("Show me machine learning articles from last week", now=NOW)

        assert result.topic == "machine learning articles from"
        assert result.window.label == "last week"

    def test_no_time_phrase_keeps_query(self, parser):
        result = parser.parse("  python tutorials  ", now=NOW)

        assert result.window is None
        assert result.has_window is False
        assert result.topic == "python tutorials"

    def test_topic_too_short(self, parser):
        result = parser.parse("show me yesterday?", now=NOW)

        assert result.has_window
        assert result.topic == ""
        assert result.topic_too_short

    def test_original_is_preserved(self, parser):
        result = parser.parse("robotics yesterday", now=NOW)
        assert result.original == "robotics yesterday"
        assert result.topic == "robotics"


class TestWindows:
    """Window arithmetic for each phrase in the vocabulary"""

    @pytest.fixture
    def parser(self):
        from brainsquared.retriever.temporal_parser import TemporalParser
        return TemporalParser()

    def test_yesterday_is_whole_previous_day(self, parser):
        from brainsquared.retriever.temporal_parser import DAY_MS

        window = parser.parse("what did I read yesterday about rust", now=NOW).window

        assert window.start == _ms(datetime(2025, 6, 17))
        assert window.end == _ms(datetime(2025, 6, 17, 23, 59, 59, 999000))
        assert window.end - window.start == DAY_MS - 1
        assert window.label == "yesterday"

    def test_today_ends_now(self, parser):
        window = parser.parse("news today", now=NOW).window

        assert window.start == _ms(datetime(2025, 6, 18))
        assert window.end == _ms(NOW)

    def test_weeks_ago_is_one_week_long(self, parser):
        from brainsquared.retriever.temporal_parser import WEEK_MS

        window = parser.parse("robotics 4 weeks ago", now=NOW).window

        assert window.start == _ms(NOW) - 4 * WEEK_MS
        assert window.end == window.start + WEEK_MS

    def test_written_numbers(self, parser):
        from brainsquared.retriever.temporal_parser import DAY_MS

        window = parser.parse("recipes three days ago", now=NOW).window

        assert window.label == "3 days ago"
        assert window.start == _ms(NOW) - 3 * DAY_MS
        assert window.end == window.start + DAY_MS

    def test_article_means_one(self, parser):
        window = parser.parse("what was I watching about a week ago", now=NOW).window
        assert window.label == "1 week ago"

    def test_this_week_starts_sunday(self, parser):
        window = parser.parse("hiking this week", now=NOW).window

        assert window.start == _ms(datetime(2025, 6, 15))
        assert window.end == _ms(NOW)

    def test_last_week_is_previous_calendar_week(self, parser):
        window = parser.parse("hiking last week", now=NOW).window

        assert window.start == _ms(datetime(2025, 6, 8))
        assert window.end == _ms(datetime(2025, 6, 14, 23, 59, 59, 999000))

    def test_this_month(self, parser):
        window = parser.parse("budgets this month", now=NOW).window
        assert window.start == _ms(datetime(2025, 6, 1))

    def test_last_month_is_previous_calendar_month(self, parser):
        window = parser.parse("budgets last month", now=NOW).window

        assert window.start == _ms(datetime(2025, 5, 1))
        assert window.end == _ms(datetime(2025, 5, 31, 23, 59, 59, 999000))

    def test_months_ago(self, parser):
        window = parser.parse("guitar 2 months ago", now=NOW).window

        assert window.start == _ms(datetime(2025, 4, 18, 14, 30))
        assert window.end == _ms(datetime(2025, 5, 18, 14, 30))
        assert window.label == "2 months ago"

    def test_months_ago_clamps_day(self, parser):
        window = parser.parse("taxes 1 month ago", now=datetime(2025, 3, 31, 9, 0)).window
        assert window.start == _ms(datetime(2025, 2, 28, 9, 0))

    def test_last_n_days(self, parser):
        from brainsquared.retriever.temporal_parser import DAY_MS

        result = parser.parse("rust in the last 3 days", now=NOW)

        assert result.topic == "rust"
        assert result.window.label == "last 3 days"
        assert result.window.end - result.window.start == 3 * DAY_MS

    def test_last_n_months(self, parser):
        window = parser.parse("travel last 2 months", now=NOW).window

        assert window.label == "last 2 months"
        assert window.start == _ms(datetime(2025, 4, 18, 14, 30))

    def test_windows_are_ordered(self, parser):
        for phrase in ("today", "yesterday", "this week", "last week", "this month",
                       "last month", "5 days ago", "2 weeks ago", "3 months ago",
                       "last 10 days", "last 2 weeks", "last 6 months"):
            window = parser.parse(f"topic {phrase}", now=NOW).window
            assert window is not None, phrase
            assert window.start <= window.end, phrase

    def test_huge_month_counts_stop_at_epoch(self, parser):
        result = parser.parse("robotics 30000 months ago", now=NOW)

        assert result.topic == "robotics"
        assert result.window.start == 0
        assert result.window.start <= result.window.end
        assert result.window.label == "30000 months ago"

        window = parser.parse("robotics last 30000 months", now=NOW).window
        assert window.start == 0
        assert window.end == _ms(NOW)

    def test_huge_day_and_week_counts_stop_at_epoch(self, parser):
        from brainsquared.retriever.temporal_parser import MAX_COUNT

        for phrase in ("99999999999999999999 days ago", "5000000 weeks ago",
                       "last 99999999 days", "last 700000 weeks"):
            window = parser.parse(f"robotics {phrase}", now=NOW).window
            assert window.start == 0, phrase
            assert window.start <= window.end, phrase

        label = parser.parse("robotics 99999999999999999999 days ago", now=NOW).window.label
        assert label == f"{MAX_COUNT} days ago"


class TestDetector:
    """Temporal query classification"""

    def test_time_anchored_queries(self):
        from brainsquared.retriever.temporal_parser import is_temporal_query

        assert is_temporal_query("what was I reading yesterday")
        assert is_temporal_query("robotics 4 weeks ago")
        assert is_temporal_query("articles from last month")
        assert is_temporal_query("in the last three days")

    def test_plain_queries(self):
        from brainsquared.retriever.temporal_parser import is_temporal_query

        assert not is_temporal_query("python tutorials")
        assert not is_temporal_query("what did I read about the weekend")
        assert not is_temporal_query("")

    def test_detector_hit_without_rule(self):
        from brainsquared.retriever.temporal_parser import is_temporal_query, parse_temporal

        assert is_temporal_query("that blog from a while ago")
        assert parse_temporal("that blog from a while ago", now=NOW).window is None

    def test_custom_vocabulary(self):
        import re
        from brainsquared.common.schemas import TimeWindow
        from brainsquared.retriever.temporal_parser import TemporalParser, TemporalRule

        rule = TemporalRule(
            name="epoch",
            pattern=re.compile(r"\bat the epoch\b"),
            build=lambda match, now: TimeWindow(start=0, end=1000, label="the epoch"),
        )
        parser = TemporalParser(rules=(rule,), detector=re.compile(r"epoch"))

        result = parser.parse("unix at the epoch", now=NOW)

        assert parser.is_temporal("unix at the epoch")
        assert result.window.label == "the epoch"
        assert result.topic == "unix"
