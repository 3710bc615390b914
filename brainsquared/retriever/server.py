"""
Retriever Server

FastAPI server answering browsing-history questions.

Endpoints:
- GET /api/health: Health check
- POST /api/history/search: Query history, JSON envelope
- POST /api/history/search/stream: Query history, Server-Sent Events

The caller is identified by the X-User-Id header, set by the auth gateway
in front of this service. Every search is scoped to that user.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..common.config import BrainSquaredConfig, load_config
from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingUnavailable, InvalidQuery, RecallError, RetrievalFailed
from ..common.llm_client import LLMClient
from ..common.schemas import Query
from ..common.stream_lines import encode_sse_frame
from ..common.vector_client import VectorClient
from .orchestrator import QueryOrchestrator
from .searcher import Searcher
from .synthesizer import Synthesizer

logger = logging.getLogger("brainsquared.retriever.server")

# Global state
config: Optional[BrainSquaredConfig] = None
embedding_service: Optional[EmbeddingService] = None
orchestrator: Optional[QueryOrchestrator] = None

ERROR_STATUS = (
    (InvalidQuery, 400),
    (RetrievalFailed, 502),
    (EmbeddingUnavailable, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, embedding_service, orchestrator

    logger.info("Starting up...")
    load_dotenv()
    config = load_config()

    embedding_service = EmbeddingService(
        model=config.embedding.model,
        dimension=config.embedding.dimension,
    )
    try:
        await asyncio.to_thread(embedding_service.warm_up)
        logger.info("Embedding model ready (%s)", embedding_service.model_name)
    except EmbeddingUnavailable as e:
        logger.warning("Embedding model not loaded at startup, will retry per request: %s", e)

    vector_client = VectorClient(
        url=config.qdrant.url,
        api_key=config.qdrant.api_key or None,
        collection=config.qdrant.collection,
    )
    logger.info("Vector store: %s (collection %s)", config.qdrant.url, config.qdrant.collection)

    llm_client = LLMClient.from_config(config.llm)
    if llm_client.is_available:
        logger.info("LLM ready (%s, %s)", llm_client.provider, llm_client.model)
    else:
        logger.warning("LLM not available, narratives will use the fallback summary")

    retriever_config = config.retriever
    orchestrator = QueryOrchestrator(
        searcher=Searcher(
            vector_client,
            embedding_service,
            relaxed_min_score=retriever_config.relaxed_min_score,
            min_results=retriever_config.min_results,
            window_page_size=retriever_config.window_page_size,
        ),
        synthesizer=Synthesizer(
            llm_client,
            fallback_selection=retriever_config.fallback_selection,
            timeout=retriever_config.timeout_seconds,
        ),
        timeout_seconds=retriever_config.timeout_seconds,
    )
    logger.info("Ready to answer queries")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Brain Squared Retriever",
    description="Semantic and time-anchored recall over browsing history",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class SearchRequest(BaseModel):
    """History search request body"""
    model_config = ConfigDict(populate_by_name=True)

    query: str
    limit: Optional[int] = None
    min_score: Optional[float] = Field(default=None, alias="minScore")


# =============================================================================
# Helpers
# =============================================================================

@app.exception_handler(RecallError)
async def recall_error_handler(request: Request, exc: RecallError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "message": str(exc)},
    )


def _require_orchestrator() -> QueryOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Retriever not initialized")
    return orchestrator


def _build_query(body: SearchRequest, user_id: Optional[str]) -> Query:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")

    defaults = config.retriever if config else None
    return Query(
        text=body.query,
        user_id=user_id.strip(),
        limit=body.limit if body.limit is not None else (defaults.limit if defaults else 10),
        min_score=body.min_score if body.min_score is not None else (defaults.min_score if defaults else 0.3),
    )


async def _sse(first: Dict[str, Any], frames: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    yield encode_sse_frame(first)
    async for frame in frames:
        yield encode_sse_frame(frame)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "ok",
        "message": "Brain Squared API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "initialized": orchestrator is not None,
        "embedding_loaded": embedding_service.is_loaded if embedding_service else False,
    }


@app.post("/api/history/search")
async def search_history(body: SearchRequest, x_user_id: Optional[str] = Header(None)):
    """Search the caller's history and return results with a narrative"""
    pipeline = _require_orchestrator()
    query = _build_query(body, x_user_id)

    logger.info("Search for user %s: %r", query.user_id, query.text)
    response = await pipeline.query(query)
    return response.to_wire()


@app.post("/api/history/search/stream")
async def search_history_stream(body: SearchRequest, x_user_id: Optional[str] = Header(None)):
    """
    Same as /api/history/search, as Server-Sent Events.

    The first frame is produced before the response starts so retrieval
    errors still map to a proper status code.
    """
    pipeline = _require_orchestrator()
    query = _build_query(body, x_user_id)

    logger.info("Streaming search for user %s: %r", query.user_id, query.text)
    frames = pipeline.stream(query)
    first = await frames.__anext__()

    return StreamingResponse(
        _sse(first, frames),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def main():
    """Run the retriever server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv()
    server_config = load_config().server
    uvicorn.run(app, host=server_config.host, port=server_config.port)


if __name__ == "__main__":
    main()
