"""SQLAlchemy implementation of the QueryLogRepository.

Each write runs in its own short-lived session and is committed before
the call returns, so a streamed answer can be logged after the request
session is gone.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grounded_qa.application.interfaces.query_log_repository import QueryLogRepository
from grounded_qa.domain.entities.query_log import QueryLog
from grounded_qa.domain.exceptions import QueryLoggingError
from grounded_qa.infrastructure.database.models.rag_query_models import RagQueryModel

logger = logging.getLogger(__name__)


class SQLAlchemyQueryLogRepository(QueryLogRepository):
    """Query log repository with its own committed transaction per write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, log: QueryLog) -> QueryLog:
        try:
            async with self._session_factory() as session:
                session.add(self._to_model(log))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to persist query log %s: %s", log.id, e)
            raise QueryLoggingError(str(e)) from e
        return log

    async def get_by_id(self, query_id: str) -> QueryLog | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RagQueryModel).where(RagQueryModel.id == query_id)
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def update_feedback(
        self, query_id: str, rating: int, comment: str | None
    ) -> QueryLog | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RagQueryModel).where(RagQueryModel.id == query_id)
                )
                model = result.scalar_one_or_none()
                if model is None:
                    return None
                model.feedback_rating = rating
                model.feedback_comment = comment
                model.feedback_updated_at = datetime.now(timezone.utc)
                await session.commit()
                return self._to_entity(model)
        except SQLAlchemyError as e:
            raise QueryLoggingError(str(e)) from e

    # ── Mapping ──────────────────────────────────────────────────────

    @staticmethod
    def _to_model(entity: QueryLog) -> RagQueryModel:
        return RagQueryModel(
            id=entity.id,
            collection_id=entity.collection_id,
            conversation_id=entity.conversation_id,
            question=entity.question,
            answer=entity.answer,
            model=entity.model,
            retrieved_chunk_ids=list(entity.retrieved_chunk_ids),
            retrieved_chunk_scores=list(entity.retrieved_chunk_scores),
            prompt_tokens=entity.prompt_tokens,
            completion_tokens=entity.completion_tokens,
            latency_ms=entity.latency_ms,
            created_at=entity.created_at,
        )

    @staticmethod
    def _to_entity(model: RagQueryModel) -> QueryLog:
        return QueryLog(
            id=model.id,
            collection_id=model.collection_id,
            conversation_id=model.conversation_id,
            question=model.question,
            answer=model.answer,
            model=model.model,
            retrieved_chunk_ids=list(model.retrieved_chunk_ids or []),
            retrieved_chunk_scores=list(model.retrieved_chunk_scores or []),
            prompt_tokens=model.prompt_tokens,
            completion_tokens=model.completion_tokens,
            latency_ms=model.latency_ms,
            feedback_rating=model.feedback_rating,
            feedback_comment=model.feedback_comment,
            feedback_updated_at=model.feedback_updated_at,
            created_at=model.created_at,
        )
