"""Abstract repository interface (port) for query logs."""

from abc import ABC, abstractmethod

from grounded_qa.domain.entities.query_log import QueryLog


class QueryLogRepository(ABC):
    """Port for query log persistence.

    Every write is durable when the call returns; a failure raises.
    """

    @abstractmethod
    async def create(self, log: QueryLog) -> QueryLog:
        """Persist a completed query."""
        ...

    @abstractmethod
    async def get_by_id(self, query_id: str) -> QueryLog | None:
        """Retrieve a query log by its query ID."""
        ...

    @abstractmethod
    async def update_feedback(
        self, query_id: str, rating: int, comment: str | None
    ) -> QueryLog | None:
        """Set the feedback fields only. Returns None if the query does not exist."""
        ...
