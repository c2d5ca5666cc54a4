"""Unit of Work: one database transaction with the repositories bound to it."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sigil.repositories.generation import GenerationRepository
from sigil.repositories.output import OutputRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Transaction scope shared by the generation and output repositories.

    Commits when the ``async with`` block exits cleanly, rolls back when it
    raises, and always closes the session. Keep blocks short: nothing slow
    (provider calls, uploads) should run inside one.

    Example:
        async with await uow_factory() as uow:
            generation = await uow.generations.get_by_id(generation_id)
            generation.mark_completed(model_id, cost)
            await uow.generations.save(generation)
            await uow.outputs.add_many(outputs)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.generations = GenerationRepository(session)
        self.outputs = OutputRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        # Never swallow the exception
        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Return an async callable producing a UnitOfWork on a fresh session.

    Stored on ``app.state.uow_factory`` and handed to services, so every
    transaction opens its own session.
    """

    async def _create_uow() -> UnitOfWork:
        return UnitOfWork(session_factory())

    return _create_uow
