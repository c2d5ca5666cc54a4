"""Recovery sweep for generations abandoned mid-processing.

A generation is stuck when it is still active, was created at least
``min_age_minutes`` ago, and its heartbeat is missing or older than
``heartbeat_stale_minutes``. Stuck generations are failed with a retryable
timeout error so users can retry them.

The sweep is detective only: an in-flight provider call is not cancelled, and
its late completion write is rejected by the lifecycle.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

import structlog

from sigil.core.timezone import utcnow
from sigil.uow import UnitOfWork

logger = structlog.get_logger(__name__)

TIMEOUT_MESSAGE = "Generation timed out waiting for provider response. Please try again."
TIMEOUT_CATEGORY = "timeout"


@dataclass
class SweepResult:
    """Result of a recovery sweep."""

    cleaned: int = 0
    ids: list[UUID] = field(default_factory=list)


async def sweep_stuck_generations(
    uow: UnitOfWork,
    min_age_minutes: int = 10,
    heartbeat_stale_minutes: int = 5,
    now: datetime | None = None,
) -> SweepResult:
    """Fail every stuck generation in one bulk update.

    Runs inside the caller's Unit of Work; the caller commits.

    Args:
        uow: Unit of Work for the sweep transaction
        min_age_minutes: Minimum age (inclusive) before a generation counts as stuck
        heartbeat_stale_minutes: Heartbeat age beyond which nobody is working on it
        now: Reference time (defaults to current UTC time)

    Returns:
        SweepResult with the ids that were transitioned
    """
    now = now or utcnow()
    created_before = now - timedelta(minutes=min_age_minutes)
    heartbeat_before = now - timedelta(minutes=heartbeat_stale_minutes)

    stuck = await uow.generations.get_stuck(created_before, heartbeat_before)
    if not stuck:
        logger.debug("sweep.nothing_stuck")
        return SweepResult()

    ids = [generation.id for generation in stuck]
    cleaned = await uow.generations.fail_many(
        ids, TIMEOUT_MESSAGE, TIMEOUT_CATEGORY, retryable=True
    )

    logger.info(
        "sweep.completed",
        cleaned=cleaned,
        generation_ids=[str(generation_id) for generation_id in ids],
    )
    return SweepResult(cleaned=cleaned, ids=ids)
