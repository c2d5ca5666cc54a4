"""Request-scoped database dependency."""

from typing import AsyncGenerator

from fastapi import Request

from sigil.uow import UnitOfWork


async def get_uow(request: Request) -> AsyncGenerator[UnitOfWork, None]:
    """Yield a UnitOfWork spanning the request.

    Used by routes that work on the database directly (admin sweep and
    listings); the transaction commits after the handler returns and rolls
    back if it raises.
    """
    async with await request.app.state.uow_factory() as uow:
        yield uow
