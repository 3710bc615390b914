"""
Vector Client

Wraps qdrant-client behind the narrow interface the retriever needs:
user-scoped similarity query and user-scoped time-range scroll.
Every call filters on the exact-match ``user_id`` payload field.
"""

import logging
from typing import List, Dict, Any, Optional

from .errors import RetrievalFailed

logger = logging.getLogger("brainsquared.common.vector_client")

USER_ID_FIELD = "user_id"
VISIT_TIME_FIELD = "lastVisitTime"


class VectorClient:
    """
    Read-only client to the browsing-history collection.

    The underlying QdrantClient is created lazily on first use, so building
    a VectorClient never touches the network.
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        collection: str = "browsing_history",
        client=None,
    ):
        """
        Initialize vector client.

        Args:
            url: Qdrant endpoint
            api_key: Qdrant Cloud API key
            collection: Collection holding browsing-history points
            client: Pre-built QdrantClient (tests, embedded mode)
        """
        self._url = url
        self._api_key = api_key
        self._collection = collection
        self._client = client

    @property
    def collection(self) -> str:
        return self._collection

    def _ensure_initialized(self):
        """Lazily create the QdrantClient"""
        if self._client is not None:
            return self._client

        try:
            from qdrant_client import QdrantClient

            self._client = QdrantClient(url=self._url, api_key=self._api_key or None)
            logger.info("Connected to Qdrant at %s (collection: %s)", self._url, self._collection)
        except Exception as e:
            logger.error("Error initializing Qdrant client: %s", e)
            raise RetrievalFailed(f"Vector store unavailable: {e}") from e
        return self._client

    @staticmethod
    def _user_condition(user_id: str):
        from qdrant_client import models

        return models.FieldCondition(
            key=USER_ID_FIELD,
            match=models.MatchValue(value=user_id),
        )

    def query(
        self,
        user_id: str,
        vector: List[float],
        limit: int,
        min_score: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Similarity search restricted to one user's points.

        Args:
            user_id: Owning principal
            vector: Query embedding
            limit: Maximum number of points
            min_score: Score threshold, or None for an unranked top-K scan

        Returns:
            List of {id, payload, score} dicts, best score first
        """
        from qdrant_client import models

        client = self._ensure_initialized()
        try:
            response = client.query_points(
                collection_name=self._collection,
                query=vector,
                limit=limit,
                score_threshold=min_score,
                query_filter=models.Filter(must=[self._user_condition(user_id)]),
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            logger.error("Qdrant query failed: %s", e)
            raise RetrievalFailed(f"Vector query failed: {e}") from e

        return [
            {"id": str(point.id), "payload": point.payload or {}, "score": point.score}
            for point in response.points
        ]

    def scroll_by_range(
        self,
        user_id: str,
        field: str,
        start: float,
        end: float,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """
        Fetch one user's points whose ``field`` lies in [start, end].

        No vector scoring happens; ``score`` is None on every returned dict.
        """
        from qdrant_client import models

        client = self._ensure_initialized()
        scroll_filter = models.Filter(must=[
            self._user_condition(user_id),
            models.FieldCondition(key=field, range=models.Range(gte=start, lte=end)),
        ])
        try:
            points, _next_offset = client.scroll(
                collection_name=self._collection,
                scroll_filter=scroll_filter,
                limit=limit,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            logger.error("Qdrant scroll failed: %s", e)
            raise RetrievalFailed(f"Vector scroll failed: {e}") from e

        return [
            {"id": str(point.id), "payload": point.payload or {}, "score": None}
            for point in points
        ]

    def ensure_payload_indexes(self) -> Dict[str, Any]:
        """
        Create the payload indexes the filters rely on.

        ``user_id`` is a keyword index; ``lastVisitTime`` is a float index
        because browser timestamps may carry sub-millisecond precision.
        Already-existing indexes are reported, not treated as errors.
        """
        from qdrant_client import models

        client = self._ensure_initialized()
        created = {}
        for field_name, schema in (
            (USER_ID_FIELD, models.PayloadSchemaType.KEYWORD),
            (VISIT_TIME_FIELD, models.PayloadSchemaType.FLOAT),
        ):
            try:
                client.create_payload_index(
                    collection_name=self._collection,
                    field_name=field_name,
                    field_schema=schema,
                )
                created[field_name] = "created"
            except Exception as e:
                if "already exists" in str(e):
                    created[field_name] = "exists"
                else:
                    raise RetrievalFailed(f"Could not index {field_name}: {e}") from e
        return created
