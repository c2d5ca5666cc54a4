"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from sigil.models.generation import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Generation,
    GenerationStatus,
    InvalidStateTransition,
)
from sigil.models.output import FileType, Output

__all__ = [
    "Generation",
    "GenerationStatus",
    "InvalidStateTransition",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Output",
    "FileType",
]
