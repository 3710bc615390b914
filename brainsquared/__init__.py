"""
Brain Squared Recall

Natural-language retrieval over a user's own browsing-history archive.

Philosophy:
- Every query is scoped to exactly one user
- Show something rather than nothing: similarity thresholds relax in tiers
- Inside a narrow time window, recency beats similarity; the LLM judges topic
- A failing language model degrades the narrative, never the request

Usage:
    from brainsquared.common import load_config, EmbeddingService, VectorClient
    from brainsquared.retriever import QueryOrchestrator, Searcher, Synthesizer
"""

__version__ = "0.1.0"
