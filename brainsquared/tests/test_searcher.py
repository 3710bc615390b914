"""
Tests for Searcher

Covers the threshold cascade, user scoping and time-window fetches.
"""

import pytest
from unittest.mock import Mock


def _point(point_id, score, user_id="u1", visited=1_700_000_000_000, title=None):
    return {
        "id": point_id,
        "payload": {
            "user_id": user_id,
            "url": f"https://example.com/{point_id}",
            "title": title or f"Page {point_id}",
            "lastVisitTime": visited,
            "visitCount": 1,
            "typedCount": 0,
        },
        "score": score,
    }


class FakeArchive:
    """Stand-in for VectorClient holding points for several users"""

    def __init__(self, points):
        self.points = points
        self.calls = []

    def query(self, user_id, vector, limit, min_score=None):
        self.calls.append((limit, min_score))
        owned = [p for p in self.points if p["payload"]["user_id"] == user_id]
        if min_score is not None:
            owned = [p for p in owned if p["score"] >= min_score]
        owned.sort(key=lambda p: -p["score"])
        return owned[:limit]


class TestBuildTiers:
    """Tier construction"""

    def test_default_cascade(self):
        from brainsquared.retriever.searcher import build_tiers

        tiers = build_tiers(0.3, 0.15)

        assert [t.name for t in tiers] == ["primary", "relaxed", "unranked"]
        assert [t.min_score for t in tiers] == [0.3, 0.15, 0.0]
        assert [t.limit_multiplier for t in tiers] == [1, 2, 2]
        assert tiers[-1].truncate is True

    def test_relaxed_skipped_when_not_looser(self):
        from brainsquared.retriever.searcher import build_tiers

        tiers = build_tiers(0.1, 0.15)

        assert [t.name for t in tiers] == ["primary", "unranked"]

    def test_zero_threshold_has_single_tier(self):
        from brainsquared.retriever.searcher import build_tiers

        assert [t.name for t in build_tiers(0.0, 0.15)] == ["primary"]


class TestCascade:
    """Threshold relaxation"""

    @pytest.fixture
    def mock_embedding(self):
        embedding = Mock()
        embedding.embed_single.return_value = [0.1] * 384
        return embedding

    @pytest.fixture
    def mock_client(self):
        return Mock()

    @pytest.fixture
    def searcher(self, mock_client, mock_embedding):
        from brainsquared.retriever.searcher import Searcher
        return Searcher(mock_client, mock_embedding)

    @pytest.mark.asyncio
    async def test_enough_results_stops_after_primary(self, searcher, mock_client):
        mock_client.query.return_value = [_point(f"p{i}", 0.9 - i * 0.1) for i in range(4)]

        results = await searcher.search("python tutorials", "u1")

        assert len(results) == 4
        assert mock_client.query.call_count == 1

    @pytest.mark.asyncio
    async def test_relaxed_tier_replaces_smaller_result(self, searcher, mock_client):
        from brainsquared.retriever.searcher import CascadeProgress

        mock_client.query.side_effect = [
            [_point("p0", 0.5)],
            [_point(f"p{i}", 0.5 - i * 0.05) for i in range(5)],
        ]
        progress = CascadeProgress()

        results = await searcher.search("robotics", "u1", limit=10, min_score=0.3, progress=progress)

        assert len(results) == 5
        assert progress.tiers_run == ["primary", "relaxed"]
        assert progress.winning_tier == "relaxed"
        second = mock_client.query.call_args_list[1]
        assert second.args[2] == 20
        assert second.args[3] == 0.15

    @pytest.mark.asyncio
    async def test_looser_tier_never_shrinks_results(self, searcher, mock_client):
        from brainsquared.retriever.searcher import CascadeProgress

        mock_client.query.side_effect = [
            [_point("p0", 0.6), _point("p1", 0.4)],
            [],
            [_point("p2", 0.1)],
        ]
        progress = CascadeProgress()

        results = await searcher.search("robotics", "u1", progress=progress)

        assert [r.id for r in results] == ["p0", "p1"]
        assert progress.tiers_run == ["primary", "relaxed", "unranked"]
        assert progress.winning_tier == "primary"

    @pytest.mark.asyncio
    async def test_unranked_tier_truncates_to_limit(self, searcher, mock_client):
        mock_client.query.side_effect = [
            [],
            [_point("p0", 0.2)],
            [_point(f"p{i:02d}", 0.1) for i in range(10)],
        ]

        results = await searcher.search("robotics", "u1", limit=4)

        assert len(results) == 4
        third = mock_client.query.call_args_list[2]
        assert third.args[2] == 8
        assert third.args[3] == 0.0

    @pytest.mark.asyncio
    async def test_unranked_tier_drops_negative_scores(self, searcher, mock_client, caplog):
        import logging

        mock_client.query.side_effect = [
            [],
            [],
            [_point("near", 0.02), _point("far", -0.05), _point("opposite", -0.12)],
        ]

        with caplog.at_level(logging.WARNING, logger="brainsquared.retriever.searcher"):
            results = await searcher.search("robotics", "u1")

        assert [r.id for r in results] == ["near"]
        assert all(0.0 <= r.relevance_score <= 1.0 for r in results)
        assert "Dropping 2 points scored below 0.0 on unranked tier" in caplog.text

    @pytest.mark.asyncio
    async def test_ties_ordered_by_recency_then_id(self, searcher, mock_client):
        mock_client.query.return_value = [
            _point("b", 0.5, visited=100),
            _point("c", 0.5, visited=300),
            _point("a", 0.5, visited=100),
            _point("d", 0.9, visited=50),
        ]

        results = await searcher.search("robotics", "u1")

        assert [r.id for r in results] == ["d", "c", "a", "b"]

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, searcher, mock_client):
        from brainsquared.common.errors import RetrievalFailed

        mock_client.query.side_effect = RetrievalFailed("connection refused")

        with pytest.raises(RetrievalFailed):
            await searcher.search("robotics", "u1")

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, searcher, mock_client):
        from brainsquared.common.errors import RetrievalFailed

        mock_client.query.side_effect = [[_point("p0", 0.5)], RuntimeError("boom")]

        with pytest.raises(RetrievalFailed, match="relaxed"):
            await searcher.search("robotics", "u1")

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, searcher, mock_client, mock_embedding):
        from brainsquared.common.errors import EmbeddingUnavailable

        mock_embedding.embed_single.side_effect = EmbeddingUnavailable("model missing")

        with pytest.raises(EmbeddingUnavailable):
            await searcher.search("robotics", "u1")
        mock_client.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, searcher, mock_client):
        from brainsquared.common.errors import InvalidQuery

        with pytest.raises(InvalidQuery):
            await searcher.search("   ", "u1")
        mock_client.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_embeds_once_for_all_tiers(self, searcher, mock_client, mock_embedding):
        mock_client.query.return_value = []

        await searcher.search("robotics", "u1")

        assert mock_client.query.call_count == 3
        mock_embedding.embed_single.assert_called_once_with("robotics")


class TestUserScoping:
    """Every result belongs to the requesting user"""

    @pytest.fixture
    def archive(self):
        return FakeArchive(
            [_point(f"a{i}", 0.9 - i * 0.1, user_id="alice") for i in range(5)]
            + [_point(f"b{i}", 0.85 - i * 0.1, user_id="bob") for i in range(5)]
        )

    @pytest.fixture
    def searcher(self, archive):
        from brainsquared.retriever.searcher import Searcher

        embedding = Mock()
        embedding.embed_single.return_value = [0.1] * 384
        return Searcher(archive, embedding)

    @pytest.mark.asyncio
    async def test_disjoint_archives(self, searcher):
        alice = await searcher.search("anything", "alice", min_score=0.0)
        bob = await searcher.search("anything", "bob", min_score=0.0)

        assert {r.id for r in alice} == {f"a{i}" for i in range(5)}
        assert {r.id for r in bob} == {f"b{i}" for i in range(5)}

    @pytest.mark.asyncio
    async def test_foreign_points_are_dropped(self):
        from brainsquared.retriever.searcher import Searcher

        client = Mock()
        client.query.return_value = [
            _point("mine", 0.9, user_id="alice"),
            _point("leaked", 0.8, user_id="bob"),
            _point("mine2", 0.7, user_id="alice"),
        ]
        embedding = Mock()
        embedding.embed_single.return_value = [0.1] * 384

        results = await Searcher(client, embedding).search("anything", "alice", min_score=0.0)

        assert [r.id for r in results] == ["mine", "mine2"]


class TestFetchWindow:
    """Time-window retrieval"""

    @pytest.fixture
    def window(self):
        from brainsquared.common.schemas import TimeWindow
        return TimeWindow(start=1_000, end=2_000, label="4 weeks ago")

    @pytest.mark.asyncio
    async def test_items_carry_sentinel_score(self, window):
        from brainsquared.retriever.searcher import Searcher

        client = Mock()
        client.scroll_by_range.return_value = [
            {"id": "w1", "payload": {"user_id": "u1", "title": "Robot arms", "lastVisitTime": 1_500}, "score": None},
            {"id": "w2", "payload": {"user_id": "u1", "lastVisitTime": 1_800}, "score": None},
        ]
        embedding = Mock()

        results = await Searcher(client, embedding, window_page_size=50).fetch_window("u1", window)

        assert [r.relevance_score for r in results] == [1.0, 1.0]
        assert results[1].title == "Untitled"
        client.scroll_by_range.assert_called_once_with("u1", "lastVisitTime", 1_000, 2_000, 50)
        embedding.embed_single.assert_not_called()

    @pytest.mark.asyncio
    async def test_items_outside_window_are_dropped(self, window, caplog):
        import logging
        from brainsquared.retriever.searcher import Searcher

        client = Mock()
        client.scroll_by_range.return_value = [
            {"id": "early", "payload": {"user_id": "u1", "lastVisitTime": 999}, "score": None},
            {"id": "first", "payload": {"user_id": "u1", "lastVisitTime": 1_000}, "score": None},
            {"id": "last", "payload": {"user_id": "u1", "lastVisitTime": 2_000}, "score": None},
            {"id": "late", "payload": {"user_id": "u1", "lastVisitTime": 2_500}, "score": None},
        ]

        with caplog.at_level(logging.WARNING, logger="brainsquared.retriever.searcher"):
            results = await Searcher(client, Mock()).fetch_window("u1", window)

        assert [r.id for r in results] == ["first", "last"]
        assert "Dropping item late visited at 2500, outside 4 weeks ago" in caplog.text

    @pytest.mark.asyncio
    async def test_window_error_is_wrapped(self, window):
        from brainsquared.common.errors import RetrievalFailed
        from brainsquared.retriever.searcher import Searcher

        client = Mock()
        client.scroll_by_range.side_effect = ConnectionError("down")

        with pytest.raises(RetrievalFailed):
            await Searcher(client, Mock()).fetch_window("u1", window)
