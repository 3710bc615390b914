"""
Brain Squared Schemas

Request, candidate and response models shared by the retriever and the API.
"""

from .history import (
    Query,
    TimeWindow,
    CandidateItem,
    SearchResponse,
    WINDOW_SENTINEL_SCORE,
)

__all__ = [
    "Query",
    "TimeWindow",
    "CandidateItem",
    "SearchResponse",
    "WINDOW_SENTINEL_SCORE",
]
