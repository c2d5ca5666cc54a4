"""Repository layer for Sigil backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from sigil.repositories.generation import GenerationRepository
from sigil.repositories.output import OutputRepository

__all__ = [
    "GenerationRepository",
    "OutputRepository",
]
