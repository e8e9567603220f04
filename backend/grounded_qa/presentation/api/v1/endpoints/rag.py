"""RAG endpoints — grounded answers (sync or SSE), retrieval-only search, feedback."""

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from grounded_qa.application.schemas import (
    FeedbackRequest,
    QueryMetadataSchema,
    RagQueryRequest,
    RagQueryResponse,
    ScoredChunkSchema,
    SearchRequest,
    SearchResponse,
    SourceChunkSchema,
)
from grounded_qa.application.services import AnswerStream, HybridRetriever, RagQueryService
from grounded_qa.domain.entities import ChatMessage, RagAnswer, SearchFilters
from grounded_qa.domain.exceptions import (
    CompletionProviderError,
    EntityNotFoundError,
    QueryLoggingError,
)
from grounded_qa.infrastructure.dependencies import get_hybrid_retriever, get_rag_query_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["RAG"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ── Helpers ──────────────────────────────────────────────────────────


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _sources(answer: RagAnswer) -> list[SourceChunkSchema]:
    return [
        SourceChunkSchema(
            chunk_id=s.chunk_id,
            resource_id=s.resource_id,
            filename=s.filename,
            page_number=s.page_number,
            section_heading=s.section_heading,
            content_preview=s.content_preview,
            similarity_score=s.similarity_score,
            rank=s.rank,
        )
        for s in answer.sources
    ]


def _metadata(answer: RagAnswer) -> QueryMetadataSchema:
    m = answer.metadata
    return QueryMetadataSchema(
        model=m.model,
        prompt_tokens=m.prompt_tokens,
        completion_tokens=m.completion_tokens,
        latency_ms=m.latency_ms,
        search_latency_ms=m.search_latency_ms,
        llm_latency_ms=m.llm_latency_ms,
        chunks_retrieved=m.chunks_retrieved,
        conversation_id=m.conversation_id,
    )


def _to_response(answer: RagAnswer) -> RagQueryResponse:
    return RagQueryResponse(
        query_id=answer.query_id,
        answer=answer.answer,
        sources=_sources(answer),
        metadata=_metadata(answer),
    )


def _provider_http_error(e: CompletionProviderError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code if 400 <= e.status_code < 600 else 502,
        detail=f"[{e.provider}] {e.message}",
    )


async def _error_events(message: str) -> AsyncIterator[str]:
    yield _sse({"type": "error", "error": message})


async def _answer_events(channel: AnswerStream) -> AsyncIterator[str]:
    """Forward fragments, then a done (or error) event.

    If the client disconnects, the channel is detached and the producer
    finishes and logs the answer on its own.
    """
    finished = False
    try:
        async for fragment in channel:
            yield _sse({"type": "chunk", "content": fragment})
        answer = await channel.result
        finished = True
        yield _sse(
            {
                "type": "done",
                "query_id": answer.query_id,
                "metadata": _metadata(answer).model_dump(),
                "sources": [s.model_dump() for s in _sources(answer)],
            }
        )
    except Exception as e:
        finished = True
        logger.error("Streamed query failed: %s", e)
        yield _sse({"type": "error", "error": str(e)})
    finally:
        if not finished:
            channel.detach()


# ── Endpoints ────────────────────────────────────────────────────────


@router.post("/collections/{collection_id}/rag/query", response_model=None)
async def rag_query(
    collection_id: str,
    request: RagQueryRequest,
    service: RagQueryService = Depends(get_rag_query_service),
) -> RagQueryResponse | StreamingResponse:
    """Answer a question from the collection's documents.

    With ``stream=true`` the answer is sent as Server-Sent Events:
    ``chunk`` events with text fragments, then one ``done`` or ``error`` event.
    """
    kwargs = {
        "resource_ids": request.resource_ids,
        "top_k": request.top_k,
        "conversation_id": request.conversation_id,
        "history": [ChatMessage(role=m.role, content=m.content) for m in request.history],
    }

    if request.stream:
        try:
            channel = await service.stream(collection_id, request.query, **kwargs)
        except Exception as e:
            logger.error("Query retrieval failed before streaming: %s", e)
            events = _error_events(str(e))
        else:
            events = _answer_events(channel)
        return StreamingResponse(events, media_type="text/event-stream", headers=_SSE_HEADERS)

    try:
        answer = await service.query(collection_id, request.query, **kwargs)
    except CompletionProviderError as e:
        raise _provider_http_error(e)
    except QueryLoggingError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message
        )
    return _to_response(answer)


@router.post("/collections/{collection_id}/rag/search", response_model=SearchResponse)
async def rag_search(
    collection_id: str,
    request: SearchRequest,
    retriever: HybridRetriever = Depends(get_hybrid_retriever),
) -> SearchResponse:
    """Rank chunks without generating an answer."""
    filters = SearchFilters(
        resource_ids=request.resource_ids or [],
        page_numbers=request.page_numbers or [],
        tags=request.tags or [],
    )
    results = await retriever.search(
        collection_id, request.query, mode=request.mode, top_k=request.top_k, filters=filters
    )
    return SearchResponse(
        mode=request.mode,
        results=[
            ScoredChunkSchema(
                chunk_id=c.chunk_id,
                resource_id=c.resource_id,
                filename=c.filename,
                content=c.content,
                page_number=c.page_number,
                section_heading=c.section_heading,
                score=c.score,
                source=c.source.value,
            )
            for c in results
        ],
    )


@router.post("/rag/queries/{query_id}/feedback", status_code=status.HTTP_204_NO_CONTENT)
async def submit_feedback(
    query_id: str,
    request: FeedbackRequest,
    service: RagQueryService = Depends(get_rag_query_service),
) -> Response:
    """Rate an answered query (1–5) with an optional comment."""
    try:
        await service.submit_feedback(query_id, request.rating, request.comment)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except QueryLoggingError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
