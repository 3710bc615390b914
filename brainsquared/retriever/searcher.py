"""
Searcher

Searches one user's browsing history in the vector store.

Plain queries go through a similarity cascade: when the caller's threshold
finds too little, the threshold is relaxed and the limit widened, down to an
unranked top-K scan. Temporal queries skip similarity entirely and fetch
every item visited inside the time window.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingUnavailable, InvalidQuery, RetrievalFailed
from ..common.schemas import CandidateItem, TimeWindow, WINDOW_SENTINEL_SCORE
from ..common.vector_client import VectorClient, USER_ID_FIELD, VISIT_TIME_FIELD

logger = logging.getLogger("brainsquared.retriever.searcher")


@dataclass(frozen=True)
class RetrievalTier:
    """One attempt of the cascade"""
    name: str
    min_score: float  # 0.0 for the unranked scan; scores stay in [0, 1]
    limit_multiplier: int = 1
    truncate: bool = False  # Cut back to the caller's limit


@dataclass
class CascadeProgress:
    """
    Best result set found so far for one request.

    The orchestrator owns this object so that a request that runs out of
    time can still answer with whatever the finished tiers produced.
    """
    best: List[CandidateItem] = field(default_factory=list)
    tiers_run: List[str] = field(default_factory=list)
    winning_tier: Optional[str] = None


def build_tiers(min_score: float, relaxed_min_score: float = 0.15) -> List[RetrievalTier]:
    """
    Cascade tiers in strictly decreasing selectivity.

    A relaxed tier is only added when its threshold is below the previous
    one; the unranked tier is only added when some threshold was positive.
    """
    tiers = [RetrievalTier("primary", min_score, 1)]
    last_threshold = min_score

    if relaxed_min_score < last_threshold:
        tiers.append(RetrievalTier("relaxed", relaxed_min_score, 2))
        last_threshold = relaxed_min_score

    if last_threshold > 0:
        tiers.append(RetrievalTier("unranked", 0.0, 2, truncate=True))

    return tiers


def rank_candidates(candidates: List[CandidateItem]) -> List[CandidateItem]:
    """Score first, then most recent visit, then id (ties in unranked scans)"""
    return sorted(
        candidates,
        key=lambda c: (-c.relevance_score, -c.last_visit_time, c.id),
    )


class Searcher:
    """
    Searches browsing history using the vector store.

    Features:
    - User scoping on every call (filter + payload check)
    - Monotonic threshold relaxation (a looser tier never shrinks results)
    - Time-window scroll for temporal queries
    """

    def __init__(
        self,
        vector_client: VectorClient,
        embedding_service: EmbeddingService,
        relaxed_min_score: float = 0.15,
        min_results: int = 3,
        window_page_size: int = 100,
    ):
        """
        Initialize searcher.

        Args:
            vector_client: Vector store client
            embedding_service: For embedding queries
            relaxed_min_score: Threshold of the second tier
            min_results: Fewer candidates than this triggers the next tier
            window_page_size: Maximum items fetched for a time window
        """
        self._client = vector_client
        self._embedding = embedding_service
        self._relaxed_min_score = relaxed_min_score
        self._min_results = min_results
        self._window_page_size = window_page_size

    async def search(
        self,
        query_text: str,
        user_id: str,
        limit: int = 10,
        min_score: float = 0.3,
        progress: Optional[CascadeProgress] = None,
    ) -> List[CandidateItem]:
        """
        Run the similarity cascade.

        Args:
            query_text: Text to embed
            user_id: Owning principal
            limit: Caller's result limit
            min_score: Caller's score threshold (first tier)
            progress: Receives the best tier after each step

        Returns:
            Candidates from the tier that returned the most, best first

        Raises:
            EmbeddingUnavailable: the query could not be embedded
            RetrievalFailed: the vector store failed on any tier
        """
        if not query_text or not query_text.strip():
            raise InvalidQuery("Cannot search with empty query text")

        progress = progress if progress is not None else CascadeProgress()
        vector = await asyncio.to_thread(self._embed, query_text)

        for index, tier in enumerate(build_tiers(min_score, self._relaxed_min_score)):
            if index > 0:
                if len(progress.best) >= self._min_results:
                    break
                logger.info(
                    "Only %d results, trying %s tier (threshold %s, limit %d)",
                    len(progress.best), tier.name, tier.min_score, limit * tier.limit_multiplier,
                )

            candidates = await self._run_tier(tier, vector, user_id, limit)
            progress.tiers_run.append(tier.name)

            if index == 0 or len(candidates) > len(progress.best):
                progress.best = candidates
                progress.winning_tier = tier.name
                logger.info("Tier %s returned %d results", tier.name, len(candidates))
            else:
                logger.info(
                    "Tier %s returned %d results, keeping %d from %s",
                    tier.name, len(candidates), len(progress.best), progress.winning_tier,
                )

        return list(progress.best)

    async def fetch_window(self, user_id: str, window: TimeWindow) -> List[CandidateItem]:
        """
        Fetch every item the user visited inside the window.

        No embedding or scoring: each item carries the sentinel relevance,
        ranking is left to the synthesizer which knows the topic.
        """
        try:
            raw = await asyncio.to_thread(
                self._client.scroll_by_range,
                user_id,
                VISIT_TIME_FIELD,
                window.start,
                window.end,
                self._window_page_size,
            )
        except RetrievalFailed:
            raise
        except Exception as e:
            logger.error("Time-window fetch error: %s", e, exc_info=True)
            raise RetrievalFailed(f"Time-window fetch failed: {e}") from e

        candidates = []
        for item in self._to_candidates(raw, user_id, score=WINDOW_SENTINEL_SCORE):
            if not window.contains(item.last_visit_time):
                logger.warning(
                    "Dropping item %s visited at %d, outside %s", item.id, item.last_visit_time, window.label,
                )
                continue
            candidates.append(item)

        logger.info(
            "Found %d items in %s (%d..%d)", len(candidates), window.label, window.start, window.end,
        )
        return candidates

    def _embed(self, text: str) -> List[float]:
        try:
            return self._embedding.embed_single(text)
        except EmbeddingUnavailable:
            raise
        except ValueError as e:
            raise InvalidQuery(str(e)) from e
        except Exception as e:
            raise EmbeddingUnavailable(f"Query embedding failed: {e}") from e

    async def _run_tier(
        self,
        tier: RetrievalTier,
        vector: List[float],
        user_id: str,
        limit: int,
    ) -> List[CandidateItem]:
        try:
            raw = await asyncio.to_thread(
                self._client.query,
                user_id,
                vector,
                limit * tier.limit_multiplier,
                tier.min_score,
            )
        except RetrievalFailed:
            raise
        except Exception as e:
            logger.error("Search error on %s tier: %s", tier.name, e, exc_info=True)
            raise RetrievalFailed(f"Search failed on {tier.name} tier: {e}") from e

        scored = [p for p in raw if p.get("score") is None or p["score"] >= tier.min_score]
        if len(scored) < len(raw):
            logger.warning(
                "Dropping %d points scored below %s on %s tier",
                len(raw) - len(scored), tier.min_score, tier.name,
            )

        candidates = rank_candidates(self._to_candidates(scored, user_id))
        if tier.truncate:
            candidates = candidates[:limit]
        return candidates

    def _to_candidates(
        self,
        raw: List[Dict[str, Any]],
        user_id: str,
        score: Optional[float] = None,
    ) -> List[CandidateItem]:
        """Convert store points, dropping any point owned by another user"""
        candidates = []
        for point in raw:
            owner = (point.get("payload") or {}).get(USER_ID_FIELD)
            if owner is not None and owner != user_id:
                logger.warning("Dropping point %s owned by another user", point.get("id"))
                continue
            candidates.append(CandidateItem.from_point(point, score=score))
        return candidates
