"""knowledge_lookup: semantic search over the company knowledge base."""

from typing import Any

from app.core.config import get_settings
from app.core.embeddings import generate_embedding_async
from app.core.logging import get_logger
from app.core.schemas_tools import ToolResponse, ValidationFailedError, success_response
from app.db.knowledge import match_documents, search_documents_text

from .guards import ToolCall, require_arg, tool_handler

logger = get_logger(__name__)

MAX_LIMIT = 20


def _limit(raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        limit = int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationFailedError("limit must be a number") from e
    return max(1, min(limit, MAX_LIMIT))


@tool_handler("knowledge_lookup")
async def knowledge_lookup(call: ToolCall) -> ToolResponse:
    """
    Vector search, falling back to substring search when the embedding or
    vector match is unavailable or finds nothing.
    """
    query = str(require_arg(call.args, "query", "Query parameter is required")).strip()
    limit = _limit(call.args.get("limit"), get_settings().KNOWLEDGE_MATCH_COUNT)
    company_id = call.context.company_id

    results: list[dict[str, Any]] = []
    search_method = "vector"

    embedding = await generate_embedding_async(query)
    if embedding is not None:
        try:
            results = match_documents(embedding, company_id, limit)
        except Exception as e:
            logger.warning(
                f"Vector search failed, falling back to text search: {e}",
                extra={"company_id": company_id, "tool": "knowledge_lookup"},
            )

    if not results:
        search_method = "text"
        results = search_documents_text(company_id, query, limit)

    count = len(results)
    return success_response(
        {"query": query, "results": results, "count": count, "search_method": search_method},
        f"Found {count} knowledge result(s)" if count else "No relevant knowledge found",
    )
