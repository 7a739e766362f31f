"""Knowledge base tools: search and full-document lookup."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from booking_assistant.knowledge.models import to_jsonable
from booking_assistant.knowledge.store import KnowledgeStore
from booking_assistant.tools.registry import ToolSpec


class SearchKnowledgeBaseArgs(BaseModel):
    query: str = Field(..., min_length=1, description="The search query to find relevant information")
    max_results: int = Field(
        3, ge=1, le=10, description="Maximum number of search results to return",
    )


class GetDocumentContentArgs(BaseModel):
    document_id: str = Field(..., description="The ID of the document to retrieve")


def build_knowledge_tools(store: KnowledgeStore) -> list[ToolSpec]:
    """Create the knowledge tools bound to *store*."""

    async def search_knowledge_base(query: str, max_results: int = 3) -> dict[str, Any]:
        results = await store.search(query, max_results)
        return {"results": [to_jsonable(r) for r in results]}

    def get_document_content(document_id: str) -> dict[str, Any]:
        document = store.get(document_id)
        if document is None:
            return {"error": f"Document with ID {document_id} not found"}
        payload = to_jsonable(document)
        # The raw vector is useless to the model and very long
        payload.get("metadata", {}).pop("embedding", None)
        return {"document": payload}

    return [
        ToolSpec(
            name="search_knowledge_base",
            description=(
                "Search the knowledge base (policies, procedures, FAQs) for "
                "relevant information. Returns matching documents with a "
                "short excerpt and a relevance score."
            ),
            args_schema=SearchKnowledgeBaseArgs,
            handler=search_knowledge_base,
        ),
        ToolSpec(
            name="get_document_content",
            description=(
                "Get the full content of a specific document from the "
                "knowledge base, by the document ID returned from a search."
            ),
            args_schema=GetDocumentContentArgs,
            handler=get_document_content,
        ),
    ]
