"""Knowledge document ingestion: chunk, embed and store a company's documents."""

import asyncio
from typing import Any

from app.core.chunking import chunk_text
from app.core.embeddings import embed_texts
from app.core.logging import get_logger
from app.db import knowledge

logger = get_logger(__name__)


def ingest_document(
    company_id: str,
    title: str,
    content: str,
    source: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Chunk and embed a document into the company's knowledge base.

    Re-ingesting the same source replaces its earlier chunks. Embedding runs
    before anything is deleted, so a provider failure leaves the previous
    version searchable.

    Args:
        company_id: Owning tenant
        title: Document title
        content: Plain text of the document
        source: Stable identifier; defaults to the title
        metadata: Extra metadata stored on every chunk

    Returns:
        Dict with source, chunk_count and replaced (chunks removed)

    Raises:
        ValueError: If the document has no text
        Exception: If embedding or storage fails
    """
    source = source or title
    chunks = chunk_text(content, metadata=metadata)
    if not chunks:
        raise ValueError("Document has no text to ingest")

    embeddings = embed_texts([c["content"] for c in chunks])

    replaced = knowledge.delete_documents_by_source(company_id, source)
    rows = knowledge.insert_document_chunks(company_id, title, source, chunks, embeddings)

    logger.info(
        f"Ingested {source} as {len(rows)} chunk(s)",
        extra={"company_id": str(company_id), "replaced": replaced},
    )
    return {"source": source, "chunk_count": len(rows), "replaced": replaced}


async def ingest_document_async(
    company_id: str,
    title: str,
    content: str,
    source: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Async wrapper around ingest_document using thread pool."""
    return await asyncio.to_thread(ingest_document, company_id, title, content, source, metadata)
