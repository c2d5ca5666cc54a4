"""Generation entity - one image/video generation request with lifecycle status."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from sigil.core.timezone import utcnow


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    PROCESSING = "processing"
    PROCESSING_LOCKED = "processing_locked"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (GenerationStatus.PROCESSING, GenerationStatus.PROCESSING_LOCKED)
TERMINAL_STATUSES = (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid generation state transition."""

    pass


class Generation(SQLModel, table=True):
    """Generation tracks a single provider request from submission to terminal state.

    The processing -> processing_locked claim is performed by a conditional
    UPDATE in GenerationRepository.claim_for_processing, not by a method here,
    because it must be atomic against concurrent claimers.
    """

    __tablename__ = "generations"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    session_id: UUID = Field(index=True)
    model_id: str = Field(max_length=128)
    prompt: str
    negative_prompt: Optional[str] = Field(default=None)
    parameters: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    status: GenerationStatus = Field(default=GenerationStatus.PROCESSING, index=True)
    cost: Optional[float] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    error_category: Optional[str] = Field(default=None, max_length=50)
    error_retryable: Optional[bool] = Field(default=None)
    # Naive UTC throughout; see sigil.core.timezone.utcnow
    last_heartbeat_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=False), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False, index=True),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_completed(self, model_id: str, cost: float | None) -> None:
        """Transition from processing_locked to completed.

        Args:
            model_id: Model that actually produced the outputs (after routing)
            cost: Computed cost, or None when pricing is unavailable

        Raises:
            InvalidStateTransition: If current status is not processing_locked
        """
        if self.status != GenerationStatus.PROCESSING_LOCKED:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Generation must be in processing_locked state."
            )
        self.status = GenerationStatus.COMPLETED
        self.model_id = model_id
        self.cost = cost
        self.error_message = None
        self.error_category = None
        self.error_retryable = None

    def mark_failed(self, message: str, category: str, retryable: bool) -> None:
        """Transition from any active state to failed.

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.status in TERMINAL_STATUSES:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.status = GenerationStatus.FAILED
        self.error_message = message[:1000]
        self.error_category = category
        self.error_retryable = retryable

    def reset_for_retry(self) -> None:
        """Transition from a terminal state back to processing.

        Callers must purge the generation's outputs in the same transaction.

        Raises:
            InvalidStateTransition: If the generation is still being processed
        """
        if self.status not in TERMINAL_STATUSES:
            raise InvalidStateTransition(
                f"Cannot retry from {self.status.value}. "
                "Generation must be completed or failed."
            )
        self.status = GenerationStatus.PROCESSING
        self.cost = None
        self.error_message = None
        self.error_category = None
        self.error_retryable = None
        self.last_heartbeat_at = None

    def ensure_deletable(self) -> None:
        """Raise unless the generation may be destroyed (failed only)."""
        if self.status != GenerationStatus.FAILED:
            raise InvalidStateTransition(
                f"Cannot delete generation in {self.status.value} state. "
                "Only failed generations can be dismissed."
            )
