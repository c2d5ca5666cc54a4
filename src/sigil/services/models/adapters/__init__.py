"""Provider adapters, one per upstream provider family."""

from sigil.services.models.adapters.fal import FAL_SEEDREAM_4_CONFIG, FalAdapter
from sigil.services.models.adapters.gemini import NANO_BANANA_CONFIG, VEO_3_1_CONFIG, GeminiAdapter
from sigil.services.models.adapters.kling import KLING_OFFICIAL_CONFIG, KlingOfficialAdapter
from sigil.services.models.adapters.replicate import (
    KLING_2_6_CONFIG,
    NANO_BANANA_BACKUP_CONFIG,
    REVE_CONFIG,
    SEEDREAM_4_CONFIG,
    ReplicateAdapter,
)

__all__ = [
    "FalAdapter",
    "GeminiAdapter",
    "KlingOfficialAdapter",
    "ReplicateAdapter",
    "FAL_SEEDREAM_4_CONFIG",
    "KLING_2_6_CONFIG",
    "KLING_OFFICIAL_CONFIG",
    "NANO_BANANA_BACKUP_CONFIG",
    "NANO_BANANA_CONFIG",
    "REVE_CONFIG",
    "SEEDREAM_4_CONFIG",
    "VEO_3_1_CONFIG",
]
