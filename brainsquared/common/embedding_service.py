"""
Embedding Service

On-device embedding generation using fastembed.
One instance is built at process start and shared by every request; the
model itself is loaded on first use under a lock.
"""

import logging
import threading
from typing import List, Optional

import numpy as np

from .errors import EmbeddingUnavailable

logger = logging.getLogger("brainsquared.common.embedding_service")


class EmbeddingService:
    """
    Shared embedding service for the retriever.

    Uses fastembed for on-device embedding generation.
    This avoids external API calls and keeps browsing history local.

    Thread-safety: the first caller loads the model while holding
    ``_lock``; every later call reads the loaded model without locking.
    """

    def __init__(
        self,
        model: str = "sentence-transformers/all-MiniLM-L6-v2",
        dimension: int = 384,
    ):
        self._model_name = model
        self._dimension = dimension
        self._model = None
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        """Check if the model has been loaded"""
        return self._model is not None

    def _load_model(self):
        """Instantiate the fastembed model. Split out so tests can replace it."""
        from fastembed import TextEmbedding
        return TextEmbedding(model_name=self._model_name)

    def _ensure_model(self):
        model = self._model
        if model is not None:
            return model

        with self._lock:
            if self._model is None:
                logger.info("Loading embedding model: %s", self._model_name)
                try:
                    self._model = self._load_model()
                except Exception as e:
                    logger.error("Failed to load embedding model %s: %s", self._model_name, e)
                    raise EmbeddingUnavailable(
                        f"Embedding model {self._model_name} unavailable: {e}"
                    ) from e
                logger.info("Embedding model loaded successfully")
            return self._model

    def warm_up(self) -> None:
        """Load the model eagerly (server startup)."""
        self._ensure_model()

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not texts:
            return []

        model = self._ensure_model()
        try:
            embeddings = list(model.embed(texts))
        except Exception as e:
            raise EmbeddingUnavailable(f"Embedding failed: {e}") from e

        vectors = [self._normalize(np.asarray(e, dtype=np.float32)) for e in embeddings]
        for vec in vectors:
            if len(vec) != self._dimension:
                raise EmbeddingUnavailable(
                    f"Embedding dimension mismatch: expected {self._dimension}, got {len(vec)}"
                )
        return vectors

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector (L2 normalized)
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]

    @staticmethod
    def _normalize(vec: np.ndarray) -> List[float]:
        norm = float(np.linalg.norm(vec))
        if norm > 0:
            vec = vec / norm
        return vec.tolist()


_default_service: Optional[EmbeddingService] = None
_default_lock = threading.Lock()


def get_embedding_service(
    model: str = "sentence-transformers/all-MiniLM-L6-v2",
    dimension: int = 384,
) -> EmbeddingService:
    """
    Get the process-wide EmbeddingService, creating it on first call.

    Scripts use this; the server builds its own instance in its lifespan
    and injects it.
    """
    global _default_service

    with _default_lock:
        if _default_service is None:
            _default_service = EmbeddingService(model=model, dimension=dimension)
        return _default_service
