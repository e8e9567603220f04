"""SQLAlchemy implementation of the UnitOfWork port."""

from sqlalchemy.ext.asyncio import AsyncSession

from grounded_qa.application.interfaces.unit_of_work import UnitOfWork


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Commits or rolls back the wrapped session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
