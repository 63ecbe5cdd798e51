"""API endpoints for managing the company knowledge base."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.auth import get_admin_context
from app.core.logging import get_logger
from app.core.security_context import SecurityContext
from app.services.knowledge_ingest import ingest_document_async

logger = get_logger(__name__)

router = APIRouter()


class IngestDocumentRequest(BaseModel):
    """Request body for adding a document to the knowledge base."""

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, description="Plain text of the document")
    source: str | None = Field(None, description="Stable identifier; re-ingesting it replaces the old chunks")
    metadata: dict[str, Any] | None = None


@router.post("/documents", status_code=201)
async def ingest(
    body: IngestDocumentRequest,
    context: SecurityContext = Depends(get_admin_context),
) -> dict:
    """Chunk, embed and store a document for knowledge_lookup."""
    try:
        return await ingest_document_async(
            context.company_id, body.title, body.content, body.source, body.metadata
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Failed to ingest knowledge document", extra={"company_id": context.company_id})
        raise HTTPException(status_code=502, detail="Failed to ingest document")
