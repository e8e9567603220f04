"""RAG query service — grounded answers over a collection's chunks.

Flow for one question:
  1. Retrieve: hybrid search (vector + keyword, fused with RRF).
  2. Generate: strict-grounding prompt → completion provider (sync or streamed).
  3. Log: the QueryLog is committed before the answer is handed back.

A question that retrieves nothing short-circuits with a fixed answer and
never reaches the completion provider.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from grounded_qa.application.interfaces.chat_provider import ChatProvider
from grounded_qa.application.interfaces.query_log_repository import QueryLogRepository
from grounded_qa.application.services.hybrid_retriever import DEFAULT_TOP_K, HybridRetriever
from grounded_qa.domain.entities import (
    ChatMessage,
    QueryLog,
    QueryMetadata,
    RagAnswer,
    ScoredChunk,
    SearchFilters,
    SourceChunk,
    TokenUsage,
)
from grounded_qa.domain.exceptions import EntityNotFoundError, QueryLoggingError
from grounded_qa.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

logger = logging.getLogger(__name__)
plog = PipelineLogger("RagQueryService")

# ── Prompts ──────────────────────────────────────────────────────────

SYSTEM_PROMPT = """\
You are a research assistant answering questions about the user's uploaded documents.

Answer using ONLY the information in the excerpts provided with the question.

STRICT GROUNDING RULES:
1. Base your answer ONLY on the provided excerpts
2. If the excerpts do not answer the question, say "I don't have that information in the provided materials" instead of speculating
3. ALWAYS cite the page and section for every claim using [Page X, Section Name] format
4. If excerpts contradict each other, mention both with citations and note the discrepancy

DO NOT:
- Invent information that is not in the excerpts
- Use general knowledge to fill gaps
- Make assumptions beyond what is explicitly stated

FORMATTING:
- Use clear, concise language
- Use bullet points or numbered lists when they help
- Include page numbers for all factual claims"""

UNKNOWN_PAGE = "Unknown Page"
UNTITLED_SECTION = "Untitled"

NO_CONTEXT_ANSWER = (
    "I don't have any information about that in your uploaded materials. "
    "You may need to upload relevant resources first, or try rephrasing your question."
)
NO_MODEL = "none"

DEFAULT_HISTORY_MESSAGES = 4  # last two exchanges
DEFAULT_LATENCY_TARGET_MS = 2000


def format_excerpts(chunks: Sequence[ScoredChunk]) -> str:
    """Render retrieved chunks as numbered, citable excerpts."""
    blocks = []
    for i, chunk in enumerate(chunks, start=1):
        page = f"Page {chunk.page_number}" if chunk.page_number else UNKNOWN_PAGE
        section = chunk.section_heading or UNTITLED_SECTION
        blocks.append(
            f"[Excerpt {i}]\n"
            f"Page: {page}\n"
            f"Section: {section}\n"
            f"Content: {chunk.content}\n"
            f"---"
        )
    return "\n".join(blocks)


def build_messages(
    question: str,
    chunks: Sequence[ScoredChunk],
    history: Sequence[ChatMessage] | None = None,
    *,
    history_limit: int = DEFAULT_HISTORY_MESSAGES,
) -> list[ChatMessage]:
    """System prompt, the most recent history, then the question with its excerpts."""
    user_prompt = (
        f"QUESTION: {question}\n\n"
        f"RELEVANT EXCERPTS:\n{format_excerpts(chunks)}\n\n"
        "Please answer the question based strictly on the excerpts above."
    )
    messages = [ChatMessage(role="system", content=SYSTEM_PROMPT)]
    if history and history_limit > 0:
        messages.extend(list(history)[-history_limit:])
    messages.append(ChatMessage(role="user", content=user_prompt))
    return messages


# ── Streaming channel ────────────────────────────────────────────────

_END = object()


class AnswerStream:
    """Text fragments of a streamed answer plus a future for the final result.

    Iterate to receive fragments as the provider emits them. ``result``
    resolves to the logged RagAnswer once the producer has finished.
    A consumer that goes away calls ``detach()``: fragments stop being
    queued, but the producer still drains the provider and logs the answer.
    """

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._result: asyncio.Future[RagAnswer] = loop.create_future()
        self._result.add_done_callback(_retrieve_exception)
        self._detached = False
        self._task: asyncio.Task | None = None

    @property
    def result(self) -> "asyncio.Future[RagAnswer]":
        return self._result

    @property
    def detached(self) -> bool:
        return self._detached

    def detach(self) -> None:
        """Stop forwarding fragments; the answer is still finalized and logged."""
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> "AnswerStream":
        return self

    async def __anext__(self) -> str:
        if self._detached:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    # Producer side

    def _push(self, fragment: str) -> None:
        if not self._detached:
            self._queue.put_nowait(fragment)

    def _finish(self, answer: RagAnswer) -> None:
        if not self._result.done():
            self._result.set_result(answer)
        self._queue.put_nowait(_END)

    def _fail(self, error: Exception) -> None:
        if not self._result.done():
            self._result.set_exception(error)
        if not self._detached:
            self._queue.put_nowait(error)


def _retrieve_exception(future: asyncio.Future) -> None:
    # A detached consumer never awaits the future; mark its error as seen.
    if not future.cancelled():
        future.exception()


# ── Service ──────────────────────────────────────────────────────────


@dataclass
class _Retrieval:
    chunks: list[ScoredChunk]
    search_latency_ms: int


class RagQueryService:
    """Application service for answering questions against one collection."""

    def __init__(
        self,
        retriever: HybridRetriever,
        chat_provider: ChatProvider,
        query_log_repository: QueryLogRepository,
        *,
        model: str = "openai/gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        top_k: int = DEFAULT_TOP_K,
        history_messages: int = DEFAULT_HISTORY_MESSAGES,
        latency_target_ms: int = DEFAULT_LATENCY_TARGET_MS,
    ):
        self._retriever = retriever
        self._provider = chat_provider
        self._query_logs = query_log_repository
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._top_k = top_k
        self._history_messages = history_messages
        self._latency_target_ms = latency_target_ms

    async def query(
        self,
        collection_id: str,
        question: str,
        *,
        resource_ids: list[str] | None = None,
        top_k: int | None = None,
        conversation_id: str | None = None,
        history: list[ChatMessage] | None = None,
    ) -> RagAnswer:
        """Answer a question in one call.

        Raises:
            CompletionProviderError: If the completion call fails.
            QueryLoggingError: If the answered query cannot be persisted.
        """
        start = time.monotonic()
        query_id = str(uuid.uuid4())
        conversation_id = conversation_id or str(uuid.uuid4())

        retrieval = await self._retrieve(collection_id, question, resource_ids, top_k)
        if not retrieval.chunks:
            return self._no_context_answer(query_id, conversation_id, retrieval, start)

        messages = build_messages(
            question, retrieval.chunks, history, history_limit=self._history_messages
        )
        llm_start = time.monotonic()
        with plog.timed_step(PipelineStage.GENERATE, "Generating answer", query_id=query_id):
            result = await self._provider.complete(
                messages,
                self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        llm_latency_ms = _elapsed_ms(llm_start)

        return await self._finalize(
            query_id=query_id,
            collection_id=collection_id,
            question=question,
            conversation_id=conversation_id,
            retrieval=retrieval,
            answer=result.content,
            usage=result.usage,
            llm_latency_ms=llm_latency_ms,
            start=start,
        )

    async def stream(
        self,
        collection_id: str,
        question: str,
        *,
        resource_ids: list[str] | None = None,
        top_k: int | None = None,
        conversation_id: str | None = None,
        history: list[ChatMessage] | None = None,
    ) -> AnswerStream:
        """Retrieve now, then generate in a background producer task.

        Retrieval errors raise here; generation and logging errors surface
        through the stream and its ``result`` future.
        """
        start = time.monotonic()
        query_id = str(uuid.uuid4())
        conversation_id = conversation_id or str(uuid.uuid4())

        retrieval = await self._retrieve(collection_id, question, resource_ids, top_k)
        channel = AnswerStream()

        if not retrieval.chunks:
            answer = self._no_context_answer(query_id, conversation_id, retrieval, start)
            channel._push(answer.answer)
            channel._finish(answer)
            return channel

        messages = build_messages(
            question, retrieval.chunks, history, history_limit=self._history_messages
        )
        channel._task = asyncio.create_task(
            self._produce(
                channel,
                messages,
                query_id=query_id,
                collection_id=collection_id,
                question=question,
                conversation_id=conversation_id,
                retrieval=retrieval,
                start=start,
            ),
            name=f"rag-stream-{query_id}",
        )
        return channel

    async def submit_feedback(
        self, query_id: str, rating: int, comment: str | None = None
    ) -> QueryLog:
        """Attach a 1–5 rating (and optional comment) to a logged query.

        Raises:
            ValueError: If the rating is out of range.
            EntityNotFoundError: If no query with that id was logged.
        """
        if not 1 <= rating <= 5:
            raise ValueError("rating must be between 1 and 5")
        log = await self._query_logs.update_feedback(query_id, rating, comment)
        if log is None:
            raise EntityNotFoundError("Query", query_id)
        logger.info("Feedback %d recorded for query %s", rating, query_id)
        return log

    # ── Internals ────────────────────────────────────────────────────

    async def _retrieve(
        self,
        collection_id: str,
        question: str,
        resource_ids: list[str] | None,
        top_k: int | None,
    ) -> _Retrieval:
        search_start = time.monotonic()
        chunks = await self._retriever.hybrid_search(
            collection_id,
            question,
            top_k or self._top_k,
            SearchFilters(resource_ids=list(resource_ids or [])),
        )
        return _Retrieval(chunks=chunks, search_latency_ms=_elapsed_ms(search_start))

    async def _produce(
        self,
        channel: AnswerStream,
        messages: list[ChatMessage],
        *,
        query_id: str,
        collection_id: str,
        question: str,
        conversation_id: str,
        retrieval: _Retrieval,
        start: float,
    ) -> None:
        """Drain the provider into the channel, then log and resolve the result."""
        llm_start = time.monotonic()
        fragments: list[str] = []
        usage = TokenUsage()
        try:
            async for chunk in self._provider.stream(
                messages,
                self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            ):
                if chunk.content:
                    fragments.append(chunk.content)
                    channel._push(chunk.content)
                if chunk.usage is not None:
                    usage = chunk.usage

            if channel.detached:
                plog.detail("Client detached; logging the full answer", query_id=query_id)

            answer = await self._finalize(
                query_id=query_id,
                collection_id=collection_id,
                question=question,
                conversation_id=conversation_id,
                retrieval=retrieval,
                answer="".join(fragments),
                usage=usage,
                llm_latency_ms=_elapsed_ms(llm_start),
                start=start,
            )
        except Exception as e:
            plog.step_error(PipelineStage.GENERATE, "Streamed answer failed", error=e, query_id=query_id)
            channel._fail(e)
            return
        channel._finish(answer)

    async def _finalize(
        self,
        *,
        query_id: str,
        collection_id: str,
        question: str,
        conversation_id: str,
        retrieval: _Retrieval,
        answer: str,
        usage: TokenUsage,
        llm_latency_ms: int,
        start: float,
    ) -> RagAnswer:
        """Persist the QueryLog, then build the caller-facing answer."""
        chunks = retrieval.chunks
        latency_ms = _elapsed_ms(start)
        log = QueryLog(
            id=query_id,
            collection_id=collection_id,
            question=question,
            answer=answer,
            model=self._model,
            retrieved_chunk_ids=[c.chunk_id for c in chunks],
            retrieved_chunk_scores=[c.score for c in chunks],
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            latency_ms=latency_ms,
            conversation_id=conversation_id,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._query_logs.create(log)
        except QueryLoggingError:
            raise
        except Exception as e:
            raise QueryLoggingError(str(e)) from e

        self._check_latency(query_id, latency_ms)
        plog.step_complete(
            PipelineStage.COMPLETE,
            "Query answered",
            query_id=query_id,
            chunks=len(chunks),
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            latency_ms=latency_ms,
        )
        return RagAnswer(
            query_id=query_id,
            answer=answer,
            sources=[SourceChunk.from_scored(c, rank) for rank, c in enumerate(chunks, start=1)],
            metadata=QueryMetadata(
                model=self._model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                latency_ms=latency_ms,
                search_latency_ms=retrieval.search_latency_ms,
                llm_latency_ms=llm_latency_ms,
                chunks_retrieved=len(chunks),
                conversation_id=conversation_id,
            ),
        )

    def _no_context_answer(
        self, query_id: str, conversation_id: str, retrieval: _Retrieval, start: float
    ) -> RagAnswer:
        logger.info("No chunks retrieved for query %s; skipping completion", query_id)
        return RagAnswer(
            query_id=query_id,
            answer=NO_CONTEXT_ANSWER,
            sources=[],
            metadata=QueryMetadata(
                model=NO_MODEL,
                latency_ms=_elapsed_ms(start),
                search_latency_ms=retrieval.search_latency_ms,
                conversation_id=conversation_id,
            ),
        )

    def _check_latency(self, query_id: str, latency_ms: int) -> None:
        if latency_ms > self._latency_target_ms:
            plog.step_warning(
                PipelineStage.PIPELINE,
                "Query exceeded latency target",
                query_id=query_id,
                latency_ms=latency_ms,
                target_ms=self._latency_target_ms,
            )


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)
