"""
Brain Squared Common Module

Shared infrastructure for the retriever: configuration, collaborator
clients and the error taxonomy.
"""

from .config import BrainSquaredConfig, load_config
from .embedding_service import EmbeddingService
from .vector_client import VectorClient
from .llm_client import LLMClient
from .errors import (
    RecallError,
    InvalidQuery,
    EmbeddingUnavailable,
    RetrievalFailed,
    LLMUnavailable,
)

__all__ = [
    "BrainSquaredConfig",
    "load_config",
    "EmbeddingService",
    "VectorClient",
    "LLMClient",
    "RecallError",
    "InvalidQuery",
    "EmbeddingUnavailable",
    "RetrievalFailed",
    "LLMUnavailable",
]
