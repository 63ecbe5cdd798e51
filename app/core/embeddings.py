"""OpenAI embeddings for knowledge documents and lookup queries."""

import asyncio

from openai import OpenAI

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Longer inputs are cut before embedding; knowledge chunks are far shorter
MAX_INPUT_CHARS = 8000


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def _prepare(text: str) -> str:
    return " ".join(text.split())[:MAX_INPUT_CHARS]


def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Embed texts with the configured OpenAI model.

    Args:
        texts: Document chunks or queries

    Returns:
        One vector per input, in input order

    Raises:
        ValueError: If a vector does not have EMBEDDING_DIM dimensions, since
            match_documents compares against a fixed-width column
        Exception: If the OpenAI call fails
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()

    try:
        response = client.embeddings.create(
            model=settings.EMBEDDING_MODEL,
            input=[_prepare(t) for t in texts],
        )
    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise

    vectors = []
    for i, item in enumerate(response.data):
        if len(item.embedding) != settings.EMBEDDING_DIM:
            raise ValueError(
                f"Embedding dimension mismatch for text {i}: "
                f"expected {settings.EMBEDDING_DIM}, got {len(item.embedding)}"
            )
        vectors.append(item.embedding)

    logger.info(
        f"Generated {len(vectors)} embeddings using {settings.EMBEDDING_MODEL}",
        extra={"extra_data": {"model": settings.EMBEDDING_MODEL, "count": len(vectors)}},
    )
    return vectors


def generate_embedding(text: str) -> list[float] | None:
    """
    Embed a single text, returning None instead of raising on provider failure.

    Callers are expected to fall back to a non-vector path when this returns None.
    """
    if not text or not text.strip():
        return None
    try:
        vectors = embed_texts([text])
    except Exception as e:
        logger.warning(f"Embedding unavailable, falling back: {e}")
        return None
    return vectors[0] if vectors else None


async def generate_embedding_async(text: str) -> list[float] | None:
    """Async wrapper around generate_embedding using thread pool."""
    return await asyncio.to_thread(generate_embedding, text)
