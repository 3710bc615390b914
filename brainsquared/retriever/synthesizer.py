"""
Synthesizer

LLM-based narrative synthesis (and, for temporal queries, relevance
filtering) over retrieved history candidates.

Key principle: the language model is untrusted and optional.
- Plain queries: the model summarizes, it never removes results
- Temporal queries: the model picks relevant pages by 1-indexed position;
  its JSON is validated and out-of-range indices are dropped
- Any failure (no client, error, timeout, malformed JSON) produces a
  deterministic templated narrative that says it is an automatic summary
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, field_validator

from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import CandidateItem, TimeWindow

logger = logging.getLogger("brainsquared.retriever.synthesizer")

PLAIN_CONTEXT_SIZE = 15
FALLBACK_NOTE = "(Automatic summary: the assistant could not write a response this time.)"
CLARIFICATION_MESSAGE = (
    "I need a topic to search for. For example: "
    "'What was I reading about robotics 4 weeks ago?'"
)


class SynthesisMode(str, Enum):
    """How the model is asked to handle candidates"""
    PLAIN = "plain"  # Narrative only
    TEMPORAL = "temporal"  # Filter by topic + narrative


@dataclass
class SynthesisRequest:
    """Everything the synthesizer needs for one query"""
    mode: SynthesisMode
    query: str
    topic: str
    candidates: List[CandidateItem] = field(default_factory=list)
    window: Optional[TimeWindow] = None


@dataclass
class SynthesisResult:
    """Narrative plus the candidates judged relevant"""
    narrative: str
    selected: List[CandidateItem]
    degraded: bool = False  # Fallback template, not model-authored


class RelevanceSelection(BaseModel):
    """Strict schema for the temporal-mode JSON response"""
    model_config = ConfigDict(extra="ignore")

    relevant_indices: List[StrictInt] = Field(alias="relevantIndices")
    response: StrictStr

    @field_validator("response")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("response must not be empty")
        return value.strip()


# Plain-mode prompts
PLAIN_SYSTEM_PROMPT = """You're Brain², a friendly assistant helping users rediscover their browsing history.

Your personality:
- Conversational and warm, like chatting with a knowledgeable friend
- Use casual language (contractions like "you've", "I've", "here's")
- Get excited when you find great matches
- Empathetic when results are limited

Your task:
- Analyze the user's vector search results (semantic matches)
- Provide a helpful 2-4 sentence summary
- Highlight the most relevant or interesting finds
- If there are clear patterns, mention them casually

Keep it short - no bullet points or formal lists unless really needed."""

PLAIN_USER_PROMPT = """The user searched for: "{query}"

Here's what I found in their browsing history:
{results}

Please give them a friendly, conversational response about what they were exploring."""

# Temporal-mode prompts
TEMPORAL_SYSTEM_PROMPT = """You're Brain²'s Time Machine. You help users rediscover their past browsing.

Your task has TWO parts:

1. FILTER: Analyze all the pages and select ONLY the ones truly relevant to the user's topic "{topic}". Be selective - quality over quantity. Ignore pages that are tangentially related or noise.

2. RESPOND: Give a warm, conversational 2-4 sentence response about what they were exploring back then. Mention the time period they asked about.

You MUST respond with valid JSON in exactly this format:
{{
  "relevantIndices": [1, 3, 5],
  "response": "Your conversational response here..."
}}
relevantIndices holds the page numbers (1-indexed) that are actually relevant."""

TEMPORAL_USER_PROMPT = """The user asked: "{query}"
Topic: "{topic}"
{period}

Here are the {count} pages from their history:
{results}

Analyze these pages and return JSON with:
1. "relevantIndices": page numbers (1-indexed) that truly match the topic "{topic}"
2. "response": your friendly summary of what they were up to

Only include pages that are actually relevant to "{topic}"."""


def format_visit_date(timestamp_ms: float) -> str:
    """'Mar 4, 2025' in local time"""
    moment = datetime.fromtimestamp(timestamp_ms / 1000)
    return f"{moment:%b} {moment.day}, {moment.year}"


class Synthesizer:
    """
    Synthesizes narratives from history candidates using an LLM.

    Falls back to a templated narrative if the LLM is unavailable or fails.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        fallback_selection: int = 5,
        timeout: float = 30.0,
    ):
        """
        Initialize synthesizer.

        Args:
            llm_client: Language-model client (optional)
            fallback_selection: Candidates kept by the temporal fallback
            timeout: Per-call timeout handed to the provider
        """
        self._llm = llm_client
        self._fallback_selection = fallback_selection
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        """Check if LLM is available"""
        return self._llm is not None and self._llm.is_available

    def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """
        Produce a narrative (and selection) for the candidates.

        Never raises for collaborator problems; those yield the fallback.
        """
        if not request.candidates:
            return SynthesisResult(narrative=self.empty_narrative(request), selected=[])

        if not self.has_llm:
            logger.warning("LLM not available, using fallback summary")
            return self.fallback(request)

        try:
            if request.mode == SynthesisMode.TEMPORAL:
                return self._synthesize_temporal(request)
            return self._synthesize_plain(request)
        except Exception as e:
            logger.warning("LLM synthesis failed: %s", e)
            return self.fallback(request)

    def _synthesize_plain(self, request: SynthesisRequest) -> SynthesisResult:
        system, prompt = self.plain_prompts(request.query, request.candidates)
        narrative = self._llm.generate(
            prompt,
            system=system,
            max_tokens=600,
            temperature=0.7,
            timeout=self._timeout,
        )
        if not narrative:
            logger.warning("LLM returned an empty narrative")
            return self.fallback(request)

        return SynthesisResult(narrative=narrative, selected=list(request.candidates))

    def _synthesize_temporal(self, request: SynthesisRequest) -> SynthesisResult:
        system, prompt = self.temporal_prompts(request)
        raw = self._llm.generate(
            prompt,
            system=system,
            max_tokens=500,
            temperature=0.7,
            json_mode=True,
            timeout=self._timeout,
        )

        try:
            selection = RelevanceSelection.model_validate(parse_llm_json(raw))
        except ValidationError as e:
            logger.warning("LLM relevance response failed validation: %s", e.errors()[:3])
            return self.fallback(request)

        selected = []
        seen = set()
        for index in selection.relevant_indices:
            if 1 <= index <= len(request.candidates) and index not in seen:
                seen.add(index)
                selected.append(request.candidates[index - 1])
            elif index not in seen:
                logger.debug("Dropping out-of-range index %d", index)

        logger.info(
            "LLM selected %d relevant pages out of %d", len(selected), len(request.candidates),
        )
        return SynthesisResult(narrative=selection.response, selected=selected)

    def stream_narrative(self, query: str, candidates: List[CandidateItem]) -> Iterator[str]:
        """
        Yield plain-mode narrative fragments as they arrive.

        If the model fails before or during the stream, the fallback
        narrative is yielded instead of (or after) the partial text.
        """
        request = SynthesisRequest(mode=SynthesisMode.PLAIN, query=query, topic=query, candidates=candidates)
        if not candidates:
            yield self.empty_narrative(request)
            return
        if not self.has_llm:
            yield self.fallback(request).narrative
            return

        system, prompt = self.plain_prompts(query, candidates)
        emitted = False
        tokens = None
        try:
            tokens = self._llm.stream(
                prompt,
                system=system,
                max_tokens=600,
                temperature=0.7,
                timeout=self._timeout,
            )
            for fragment in tokens:
                emitted = True
                yield fragment
        except Exception as e:
            logger.warning("LLM stream failed: %s", e)
            narrative = self.fallback(request).narrative
            yield f"\n\n{narrative}" if emitted else narrative
            return
        finally:
            # Releases the provider connection when the consumer stops early
            if hasattr(tokens, "close"):
                tokens.close()

        if not emitted:
            yield self.fallback(request).narrative

    def fallback(self, request: SynthesisRequest) -> SynthesisResult:
        """Deterministic narrative and selection used whenever the LLM fails"""
        count = len(request.candidates)
        if request.mode == SynthesisMode.TEMPORAL:
            selected = list(request.candidates[:self._fallback_selection])
        else:
            selected = list(request.candidates)

        period = f" from {request.window.label}" if request.window else ""
        page_word = "page" if count == 1 else "pages"
        narrative = f'Found {count} {page_word} about "{request.topic}"{period}. {FALLBACK_NOTE}'
        return SynthesisResult(narrative=narrative, selected=selected, degraded=True)

    def empty_narrative(self, request: SynthesisRequest) -> str:
        if request.window:
            return (
                f"I couldn't find anything about \"{request.topic}\" from {request.window.label}. "
                "You might not have visited any pages matching that topic during that time period."
            )
        return f"I couldn't find anything about \"{request.topic}\" in your browsing history."

    def plain_prompts(self, query: str, candidates: List[CandidateItem]):
        """(system, user) prompts for plain mode"""
        results = "\n\n".join(
            f'{i}. Title: "{c.title}"\n'
            f"   URL: {c.url}\n"
            f"   Vector Match Score: {c.relevance_score * 100:.0f}%\n"
            f"   Visit Count: {c.visit_count}"
            for i, c in enumerate(candidates[:PLAIN_CONTEXT_SIZE], 1)
        )
        prompt = PLAIN_USER_PROMPT.format(query=query, results=results or "No matching pages found.")
        return PLAIN_SYSTEM_PROMPT, prompt

    def temporal_prompts(self, request: SynthesisRequest):
        """(system, user) prompts for temporal mode; lists every candidate"""
        results = "\n\n".join(
            f'{i}. "{c.title}" (visited {format_visit_date(c.last_visit_time)})\n'
            f"   URL: {c.url}\n"
            f"   Visits: {c.visit_count}"
            for i, c in enumerate(request.candidates, 1)
        )
        period = f"Time period: {request.window.label}" if request.window else "All time"
        system = TEMPORAL_SYSTEM_PROMPT.format(topic=request.topic)
        prompt = TEMPORAL_USER_PROMPT.format(
            query=request.query,
            topic=request.topic,
            period=period,
            count=len(request.candidates),
            results=results,
        )
        return system, prompt
