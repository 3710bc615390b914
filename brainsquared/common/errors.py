"""
Error taxonomy for the recall pipeline.

LLMUnavailable never reaches the caller: synthesis problems are absorbed
by the Synthesizer's fallback narrative.
"""


class RecallError(Exception):
    """Base class for errors surfaced to the caller."""
    pass


class InvalidQuery(RecallError):
    """Query text, user id, limit or score threshold is unusable."""
    pass


class EmbeddingUnavailable(RecallError):
    """The embedding model could not be loaded or failed to embed."""
    pass


class RetrievalFailed(RecallError):
    """The vector store failed on one of the search tiers."""
    pass


class LLMUnavailable(RecallError):
    """No language-model provider client could be created."""
    pass
