"""
Embedding provider factory for semantic memory search.

Text embeddings back the entity and narrative memory stores. The provider is
selected by ``embedding_provider``: OpenAI, Ollama, a local HuggingFace
sentence-transformers model, or LangChain's deterministic fake embeddings for
offline development.
"""

from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings

from adventure.config import Settings, settings
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_OLLAMA_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_HUGGINGFACE_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
FAKE_EMBEDDING_SIZE = 384


def create_embedding_provider(config: Settings = settings) -> Embeddings:
    """
    Create an embedding provider based on configuration.

    Raises:
        ValueError: if the configured provider is unknown
    """
    provider = config.embedding_provider
    logger.info(f"Creating embedding provider: {provider}")

    if provider == "openai":
        return _create_openai_embeddings(config)
    elif provider == "ollama":
        return _create_ollama_embeddings(config)
    elif provider == "huggingface":
        return _create_huggingface_embeddings(config)
    elif provider == "fake":
        logger.warning("Using deterministic fake embeddings, search ranking is meaningless")
        return DeterministicFakeEmbedding(size=FAKE_EMBEDDING_SIZE)
    raise ValueError(f"Unsupported embedding provider: {provider}")


def _create_openai_embeddings(config: Settings) -> Embeddings:
    """Create OpenAI embedding provider"""
    from langchain_openai import OpenAIEmbeddings
    from pydantic import SecretStr

    api_base = config.embedding_api_base or config.openai_api_base
    embeddings = OpenAIEmbeddings(
        model=config.embedding_model_name,
        api_key=SecretStr(config.openai_api_key),
        base_url=api_base,
        chunk_size=1000,
    )
    logger.info(f"Initialized OpenAI embeddings: {config.embedding_model_name}")
    return embeddings


def _create_ollama_embeddings(config: Settings) -> Embeddings:
    """Create Ollama embedding provider"""
    from langchain_community.embeddings import OllamaEmbeddings

    api_base = config.embedding_api_base or config.openai_api_base
    # Ollama's native API lives without the /v1 suffix
    if api_base.endswith("/v1"):
        api_base = api_base[:-3]

    model_name = config.embedding_model_name
    if model_name == "text-embedding-3-small":  # OpenAI default
        model_name = DEFAULT_OLLAMA_EMBEDDING_MODEL

    embeddings = OllamaEmbeddings(model=model_name, base_url=api_base)
    logger.info(f"Initialized Ollama embeddings: {model_name} at {api_base}")
    return embeddings


def _create_huggingface_embeddings(config: Settings) -> Embeddings:
    """Create a local sentence-transformers embedding provider"""
    from langchain_community.embeddings import HuggingFaceEmbeddings

    model_name = config.embedding_model_name
    if model_name == "text-embedding-3-small":  # OpenAI default
        model_name = DEFAULT_HUGGINGFACE_EMBEDDING_MODEL

    embeddings = HuggingFaceEmbeddings(
        model_name=model_name,
        encode_kwargs={"normalize_embeddings": True},
    )
    logger.info(f"Initialized HuggingFace embeddings: {model_name}")
    return embeddings
