"""Abstract interface (port) for transaction boundaries."""

from abc import ABC, abstractmethod


class UnitOfWork(ABC):
    """Port that lets long-running services commit progress in steps."""

    @abstractmethod
    async def commit(self) -> None:
        """Make everything written so far durable."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Discard everything written since the last commit."""
        ...
