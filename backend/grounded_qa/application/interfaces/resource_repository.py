"""Abstract repository interface (port) for uploaded resources."""

from abc import ABC, abstractmethod

from grounded_qa.domain.entities.resource import IngestionStatus, Resource


class ResourceRepository(ABC):
    """Port for resource persistence — implemented in the infrastructure layer."""

    @abstractmethod
    async def get_by_id(self, resource_id: str) -> Resource | None:
        """Retrieve a single resource by its ID."""
        ...

    @abstractmethod
    async def create(self, resource: Resource) -> Resource:
        """Persist a new resource and return it with the generated ID."""
        ...

    @abstractmethod
    async def update(self, resource: Resource) -> Resource:
        """Update an existing resource."""
        ...

    @abstractmethod
    async def list_by_collection(
        self,
        collection_id: str,
        *,
        status: IngestionStatus | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Resource]:
        """Resources of a collection, most recently uploaded first."""
        ...

    @abstractmethod
    async def count_by_collection(
        self, collection_id: str, *, status: IngestionStatus | None = None
    ) -> int:
        ...

    @abstractmethod
    async def find_needing_embeddings(
        self,
        *,
        resource_id: str | None = None,
        collection_id: str | None = None,
    ) -> list[Resource]:
        """Return resources that own at least one chunk with a null embedding.

        Failed, pending and in-flight resources are excluded.
        """
        ...
