"""Output repository for Sigil backend."""

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sigil.models.output import Output


class OutputRepository:
    """Repository for Output entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, outputs: list[Output]) -> list[Output]:
        """Persist a batch of outputs in the current transaction."""
        self.session.add_all(outputs)
        await self.session.flush()
        return outputs

    async def get_by_generation(self, generation_id: UUID) -> list[Output]:
        """Retrieve outputs of a generation ordered by creation time."""
        result = await self.session.execute(
            select(Output)
            .where(Output.generation_id == generation_id)  # type: ignore[arg-type]
            .order_by(Output.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def count_by_generation(self, generation_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(Output.id)).where(
                Output.generation_id == generation_id  # type: ignore[arg-type]
            )
        )
        return result.scalar() or 0

    async def delete_by_generation(self, generation_id: UUID) -> int:
        """Delete every output of a generation (used before a retry).

        Returns:
            Number of deleted outputs
        """
        result = await self.session.execute(
            delete(Output).where(Output.generation_id == generation_id)  # type: ignore[arg-type]
        )
        return result.rowcount  # type: ignore[attr-defined]
