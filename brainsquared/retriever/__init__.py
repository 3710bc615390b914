"""
Retriever - Semantic-Temporal Recall over Browsing History

Finds pages a user visited and explains them in a short narrative.

Key Components:
- TemporalParser: Extracts a time window and topic from the query
- Searcher: Threshold cascade and time-window fetch against the vector store
- Synthesizer: LLM narrative (and relevance filter for temporal queries)
- QueryOrchestrator: Routes queries and enforces the request deadline

Pipeline:
1. Detect and parse a time expression
2. Plain: embed + cascade search / Temporal: fetch the window
3. Synthesize a narrative, falling back to a template on any LLM failure
"""

from .temporal_parser import TemporalParser, ParsedTemporal, parse_temporal, is_temporal_query
from .searcher import Searcher, CascadeProgress, RetrievalTier, build_tiers
from .synthesizer import Synthesizer, SynthesisMode, SynthesisRequest, SynthesisResult
from .orchestrator import QueryOrchestrator

__all__ = [
    "TemporalParser",
    "ParsedTemporal",
    "parse_temporal",
    "is_temporal_query",
    "Searcher",
    "CascadeProgress",
    "RetrievalTier",
    "build_tiers",
    "Synthesizer",
    "SynthesisMode",
    "SynthesisRequest",
    "SynthesisResult",
    "QueryOrchestrator",
]
