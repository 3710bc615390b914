"""
Query Orchestrator

Routes a history query down one of two paths and assembles the response:

    plain:     cascade search -> synthesis (narrative only)
    temporal:  parse window -> window fetch -> synthesis (filter + narrative)

One deadline bounds the whole request. Retrieval that runs out of time keeps
the best tier already gathered; synthesis that runs out of time (or has no
time left) uses the deterministic fallback.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..common.schemas import CandidateItem, Query, SearchResponse
from .searcher import CascadeProgress, Searcher
from .synthesizer import (
    CLARIFICATION_MESSAGE,
    SynthesisMode,
    SynthesisRequest,
    SynthesisResult,
    Synthesizer,
)
from .temporal_parser import ParsedTemporal, TemporalParser

logger = logging.getLogger("brainsquared.retriever.orchestrator")

_STREAM_END = object()


class QueryOrchestrator:
    """
    End-to-end recall pipeline for one user query.

    Usage:
        orchestrator = QueryOrchestrator(searcher, synthesizer)
        response = await orchestrator.query(Query(text="...", user_id="u1"))
    """

    def __init__(
        self,
        searcher: Searcher,
        synthesizer: Synthesizer,
        parser: Optional[TemporalParser] = None,
        timeout_seconds: float = 30.0,
    ):
        self._searcher = searcher
        self._synthesizer = synthesizer
        self._parser = parser or TemporalParser()
        self._timeout = timeout_seconds

    def route(self, text: str) -> Optional[ParsedTemporal]:
        """Parsed temporal query, or None when the plain path applies"""
        if not self._parser.is_temporal(text):
            return None
        parsed = self._parser.parse(text)
        if not parsed.has_window:
            logger.info("Temporal wording without a recognized window, using plain search")
            return None
        return parsed

    async def query(self, query: Query) -> SearchResponse:
        """
        Answer a query with results and a narrative.

        Raises:
            EmbeddingUnavailable: plain path could not embed the query
            RetrievalFailed: the vector store failed
        """
        deadline = self._deadline()
        parsed = self.route(query.text)

        if parsed is None:
            candidates, timed_out = await self._plain_candidates(query, deadline)
            result = await self._synthesize(
                SynthesisRequest(
                    mode=SynthesisMode.PLAIN,
                    query=query.text,
                    topic=query.text,
                    candidates=candidates,
                ),
                deadline,
                timed_out,
            )
            return SearchResponse(results=result.selected, narrative=result.narrative)

        return await self._temporal(query, parsed, deadline)

    async def stream(self, query: Query) -> AsyncIterator[Dict[str, Any]]:
        """
        Answer a query as a sequence of frames.

        Plain: a results frame, one token frame per narrative fragment, done.
        Temporal: a results frame with the envelope, one token frame, done.
        """
        deadline = self._deadline()
        parsed = self.route(query.text)

        if parsed is not None:
            response = await self._temporal(query, parsed, deadline)
            envelope = response.to_wire()
            narrative = envelope.pop("narrative")
            yield {"type": "results", **envelope}
            yield {"type": "token", "content": narrative}
            yield {"type": "done"}
            return

        candidates, timed_out = await self._plain_candidates(query, deadline)
        yield {"type": "results", "results": [c.to_wire() for c in candidates]}

        request = SynthesisRequest(
            mode=SynthesisMode.PLAIN,
            query=query.text,
            topic=query.text,
            candidates=candidates,
        )
        if timed_out and not candidates:
            yield {"type": "token", "content": self._synthesizer.fallback(request).narrative}
            yield {"type": "done"}
            return

        fragments = self._synthesizer.stream_narrative(query.text, candidates)
        loop = asyncio.get_running_loop()
        emitted = False
        pending = None
        try:
            while True:
                remaining = self._remaining(deadline)
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    pending = loop.run_in_executor(None, next, fragments, _STREAM_END)
                    fragment = await asyncio.wait_for(asyncio.shield(pending), timeout=remaining)
                except asyncio.TimeoutError:
                    logger.warning("Narrative stream timed out, sending fallback summary")
                    narrative = self._synthesizer.fallback(request).narrative
                    yield {"type": "token", "content": f"\n\n{narrative}" if emitted else narrative}
                    break
                if fragment is _STREAM_END:
                    break
                emitted = True
                yield {"type": "token", "content": fragment}
        finally:
            if pending is not None and not pending.done():
                # A generator cannot be closed while a worker thread is inside next()
                pending.add_done_callback(lambda _: fragments.close())
            else:
                fragments.close()

        yield {"type": "done"}

    async def _temporal(
        self,
        query: Query,
        parsed: ParsedTemporal,
        deadline: float,
    ) -> SearchResponse:
        window = parsed.window
        logger.info("Time-window query: topic=%r window=%s", parsed.topic, window.label)

        if parsed.topic_too_short:
            return SearchResponse(
                results=[],
                narrative=CLARIFICATION_MESSAGE,
                is_time_machine=True,
                time_range=window,
            )

        candidates: List[CandidateItem] = []
        timed_out = False
        try:
            candidates = await asyncio.wait_for(
                self._searcher.fetch_window(query.user_id, window),
                timeout=self._remaining(deadline),
            )
        except asyncio.TimeoutError:
            logger.warning("Time-window fetch timed out for %s", window.label)
            timed_out = True

        result = await self._synthesize(
            SynthesisRequest(
                mode=SynthesisMode.TEMPORAL,
                query=query.text,
                topic=parsed.topic,
                candidates=candidates,
                window=window,
            ),
            deadline,
            timed_out,
        )
        return SearchResponse(
            results=result.selected,
            narrative=result.narrative,
            is_time_machine=True,
            time_range=window,
        )

    async def _plain_candidates(
        self,
        query: Query,
        deadline: float,
    ) -> Tuple[List[CandidateItem], bool]:
        """Best candidates gathered before the deadline, and whether it expired"""
        progress = CascadeProgress()
        try:
            await asyncio.wait_for(
                self._searcher.search(
                    query.text,
                    query.user_id,
                    limit=query.limit,
                    min_score=query.min_score,
                    progress=progress,
                ),
                timeout=self._remaining(deadline),
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Search timed out after tiers %s, using %d results",
                progress.tiers_run, len(progress.best),
            )
            return list(progress.best), True
        return list(progress.best), False

    async def _synthesize(
        self,
        request: SynthesisRequest,
        deadline: float,
        timed_out: bool = False,
    ) -> SynthesisResult:
        if not request.candidates:
            if timed_out:
                # Empty because retrieval ran out of time, not because nothing matched
                return self._synthesizer.fallback(request)
            return self._synthesizer.synthesize(request)

        remaining = self._remaining(deadline)
        if remaining <= 0:
            logger.warning("No time left for synthesis, using fallback summary")
            return self._synthesizer.fallback(request)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._synthesizer.synthesize, request),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            logger.warning("Synthesis timed out, using fallback summary")
            return self._synthesizer.fallback(request)

    def _deadline(self) -> float:
        return asyncio.get_running_loop().time() + self._timeout

    def _remaining(self, deadline: float) -> float:
        return max(0.0, deadline - asyncio.get_running_loop().time())
