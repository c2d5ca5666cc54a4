"""Generation repository for Sigil backend.

Provides data access methods for Generation entities, including the atomic
processing claim and the bulk updates used by the recovery sweep.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sigil.core.timezone import utcnow
from sigil.models.generation import ACTIVE_STATUSES, Generation, GenerationStatus
from sigil.models.output import Output


class GenerationRepository:
    """Repository for Generation entities.

    Mutual exclusion between concurrent processing attempts is achieved only
    through claim_for_processing (compare-and-swap on status); no row locks
    are held while a provider call is in flight.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, generation: Generation) -> Generation:
        """Persist new generation to database.

        Args:
            generation: Generation entity to persist

        Returns:
            Persisted generation with generated ID
        """
        self.session.add(generation)
        await self.session.flush()
        return generation

    async def get_by_id(self, generation_id: UUID) -> Generation | None:
        """Retrieve generation by UUID.

        Args:
            generation_id: Generation's unique identifier

        Returns:
            Generation if found, None otherwise
        """
        result = await self.session.execute(
            select(Generation).where(Generation.id == generation_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def save(self, generation: Generation) -> None:
        """Flush in-memory changes of a generation (after a domain transition)."""
        self.session.add(generation)
        await self.session.flush()
        await self.session.refresh(generation)

    async def delete(self, generation: Generation) -> None:
        """Delete a generation together with its outputs."""
        await self.session.execute(
            delete(Output).where(Output.generation_id == generation.id)  # type: ignore[arg-type]
        )
        await self.session.delete(generation)
        await self.session.flush()

    async def claim_for_processing(self, generation_id: UUID) -> bool:
        """Atomically flip processing -> processing_locked.

        Query:
            UPDATE generations
            SET status = 'processing_locked', last_heartbeat_at = now
            WHERE id = :id AND status = 'processing'

        Args:
            generation_id: Generation to claim

        Returns:
            True if this caller won the claim (exactly one row affected)
        """
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .where(Generation.status == GenerationStatus.PROCESSING)  # type: ignore[arg-type]
            .values(status=GenerationStatus.PROCESSING_LOCKED, last_heartbeat_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def touch_heartbeat(self, generation_id: UUID) -> bool:
        """Refresh last_heartbeat_at while the generation is still active."""
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .where(Generation.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
            .values(last_heartbeat_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def get_failed(self, limit: int = 100) -> list[Generation]:
        """Retrieve failed generations, newest first."""
        result = await self.session.execute(
            select(Generation)
            .where(Generation.status == GenerationStatus.FAILED)  # type: ignore[arg-type]
            .order_by(Generation.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_stuck(
        self, created_before: datetime, heartbeat_before: datetime
    ) -> list[Generation]:
        """Retrieve active generations that look abandoned.

        Query explanation:
        - WHERE status IN ('processing', 'processing_locked'): still active
        - AND created_at <= created_before: old enough to be suspicious
        - AND (last_heartbeat_at IS NULL OR last_heartbeat_at < heartbeat_before):
          nobody is working on it

        Args:
            created_before: Inclusive age cutoff
            heartbeat_before: Exclusive heartbeat staleness cutoff

        Returns:
            Matching generations ordered by creation time (oldest first)
        """
        result = await self.session.execute(
            select(Generation)
            .where(Generation.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
            .where(Generation.created_at <= created_before)  # type: ignore[arg-type]
            .where(
                or_(
                    Generation.last_heartbeat_at.is_(None),  # type: ignore[union-attr]
                    Generation.last_heartbeat_at < heartbeat_before,  # type: ignore[operator]
                )
            )
            .order_by(Generation.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def fail_many(
        self, generation_ids: list[UUID], message: str, category: str, retryable: bool
    ) -> int:
        """Bulk-transition active generations to failed.

        Rows that reached a terminal state since they were selected are left alone.

        Returns:
            Number of generations transitioned
        """
        if not generation_ids:
            return 0
        result = await self.session.execute(
            update(Generation)
            .where(Generation.id.in_(generation_ids))  # type: ignore[attr-defined]
            .where(Generation.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
            .values(
                status=GenerationStatus.FAILED,
                error_message=message,
                error_category=category,
                error_retryable=retryable,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]
