"""Knowledge base storage and search operations."""

import re
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_LIKE_UNSAFE = re.compile(r"[%_\\]")


def match_documents(
    query_embedding: list[float],
    company_id: str,
    match_count: int,
) -> list[dict[str, Any]]:
    """
    Search a company's knowledge documents by vector similarity.

    Args:
        query_embedding: Query embedding vector
        company_id: Tenant whose documents are searched
        match_count: Number of results to return

    Returns:
        List of matching chunks with similarity scores

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = supabase.rpc(
            "match_documents",
            {
                "query_embedding": query_embedding,
                "match_count": match_count,
                "_company_id": str(company_id),
            },
        ).execute()

        if not response.data:
            logger.info("No matching documents found", extra={"company_id": str(company_id)})
            return []

        logger.info(
            f"Found {len(response.data)} matching documents",
            extra={"company_id": str(company_id), "match_count": match_count},
        )
        return response.data

    except Exception as e:
        logger.error(f"Failed to match documents: {e}", extra={"company_id": str(company_id)})
        raise


def search_documents_text(company_id: str, query: str, limit: int) -> list[dict[str, Any]]:
    """
    Substring search over a company's knowledge documents.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    term = _LIKE_UNSAFE.sub(" ", query).strip()
    try:
        response = (
            supabase.table("knowledge_documents")
            .select("id, title, content, source, created_at")
            .eq("company_id", str(company_id))
            .ilike("content", f"%{term}%")
            .limit(limit)
            .execute()
        )
        return response.data or []

    except Exception as e:
        logger.error(f"Failed text search: {e}", extra={"company_id": str(company_id)})
        raise


def insert_document_chunks(
    company_id: str,
    title: str,
    source: str,
    chunks: list[dict[str, Any]],
    embeddings: list[list[float]],
) -> list[dict[str, Any]]:
    """
    Insert a document's chunks with their embeddings.

    Args:
        company_id: Owning tenant
        title: Document title, repeated on every chunk
        source: Stable document identifier (file name or URL)
        chunks: Chunk dicts with chunk_index, content and metadata
        embeddings: One vector per chunk

    Returns:
        Inserted rows

    Raises:
        ValueError: If chunks and embeddings length mismatch
        Exception: If database operation fails
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"Chunks count ({len(chunks)}) must match embeddings count ({len(embeddings)})"
        )

    supabase = get_supabase()

    rows = [
        {
            "company_id": str(company_id),
            "title": title,
            "source": source,
            "content": chunk["content"],
            "embedding": embedding,
            "metadata": {
                **chunk.get("metadata", {}),
                "chunk_index": chunk["chunk_index"],
                "total_chunks": len(chunks),
            },
        }
        for chunk, embedding in zip(chunks, embeddings, strict=True)
    ]

    try:
        response = supabase.table("knowledge_documents").insert(rows).execute()
        if not response.data:
            raise ValueError("No data returned from insert_document_chunks")

        logger.info(
            f"Inserted {len(response.data)} chunks for {source}",
            extra={"company_id": str(company_id)},
        )
        return response.data

    except Exception as e:
        logger.error(f"Failed to insert document chunks: {e}", extra={"company_id": str(company_id)})
        raise


def delete_documents_by_source(company_id: str, source: str) -> int:
    """Remove every chunk a company holds for one source; returns the count."""
    supabase = get_supabase()

    response = (
        supabase.table("knowledge_documents")
        .delete()
        .eq("company_id", str(company_id))
        .eq("source", source)
        .execute()
    )
    return len(response.data or [])
