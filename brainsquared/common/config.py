"""
Configuration Management for Brain Squared

Loads configuration from ~/.brainsquared/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("brainsquared.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".brainsquared"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class QdrantConfig:
    """Qdrant vector store configuration"""
    url: str = "http://localhost:6333"
    api_key: str = ""
    collection: str = "browsing_history"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = 384


@dataclass
class LLMConfig:
    """Language-model provider configuration"""
    provider: str = "openrouter"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4-turbo-preview"
    app_base_url: str = "http://localhost:3000"
    app_title: str = "Brain Squared"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"

    @property
    def model(self) -> str:
        """Model name for the active provider"""
        return {
            "openrouter": self.openrouter_model,
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class RetrieverConfig:
    """Retrieval pipeline configuration"""
    limit: int = 10
    min_score: float = 0.3
    relaxed_min_score: float = 0.15
    min_results: int = 3
    window_page_size: int = 100
    fallback_selection: int = 5
    timeout_seconds: float = 30.0


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class BrainSquaredConfig:
    """Main Brain Squared configuration"""
    qdrant: QdrantConfig = field(default_factory=QdrantConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_qdrant_config(data: dict) -> QdrantConfig:
    """Parse qdrant section from config dict"""
    qdrant_data = data.get("qdrant", {})
    return QdrantConfig(
        url=qdrant_data.get("url", "http://localhost:6333"),
        api_key=qdrant_data.get("api_key", ""),
        collection=qdrant_data.get("collection", "browsing_history"),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", "sentence-transformers/all-MiniLM-L6-v2"),
        dimension=embedding_data.get("dimension", 384),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict.

    Unknown keys are ignored so that older config files keep loading.
    """
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(**{
        name: llm_data.get(name, getattr(defaults, name))
        for name in defaults.__dataclass_fields__
    })


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        limit=retriever_data.get("limit", 10),
        min_score=retriever_data.get("min_score", 0.3),
        relaxed_min_score=retriever_data.get("relaxed_min_score", 0.15),
        min_results=retriever_data.get("min_results", 3),
        window_page_size=retriever_data.get("window_page_size", 100),
        fallback_selection=retriever_data.get("fallback_selection", 5),
        timeout_seconds=retriever_data.get("timeout_seconds", 30.0),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=server_data.get("port", 3001),
    )


def load_config() -> BrainSquaredConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.brainsquared/config.json)
    3. Default values
    """
    config = BrainSquaredConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.qdrant = _parse_qdrant_config(data)
            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retriever = _parse_retriever_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("QDRANT_URL"):
        config.qdrant.url = os.getenv("QDRANT_URL")
    if os.getenv("QDRANT_API_KEY"):
        config.qdrant.api_key = os.getenv("QDRANT_API_KEY")
    if os.getenv("COLLECTION_NAME"):
        config.qdrant.collection = os.getenv("COLLECTION_NAME")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("RECALL_TIMEOUT"):
        config.retriever.timeout_seconds = float(os.getenv("RECALL_TIMEOUT"))
    if os.getenv("PORT"):
        config.server.port = int(os.getenv("PORT"))

    _env_llm_map = {
        "OPENROUTER_API_KEY": "openrouter_api_key",
        "OPENROUTER_MODEL": "openrouter_model",
        "APP_BASE_URL": "app_base_url",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "BRAINSQUARED_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    return config
