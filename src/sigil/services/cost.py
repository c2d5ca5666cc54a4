"""Generation cost estimation from static provider rates."""

import math
from decimal import ROUND_HALF_UP, Decimal

from sigil.services.models.base import ModelConfig

IMAGE_MODEL_COST = {
    "seedream-4": Decimal("0.04"),
    "reve": Decimal("0.04"),
    "nano-banana-backup": Decimal("0.04"),
    "gemini-2.5-flash-image": Decimal("0.04"),
    "fal-seedream-4": Decimal("0.04"),
}

VIDEO_PER_SECOND_COST = {
    "kling-2.6": Decimal("0.01"),
    "kling-official": Decimal("0.01"),
    "veo-3.1": Decimal("0.02"),
}

DEFAULT_IMAGE_COST = Decimal("0.04")
DEFAULT_VIDEO_PER_SECOND_COST = Decimal("0.01")
DEFAULT_VIDEO_SECONDS = 5

_QUANTUM = Decimal("0.000001")


def calculate_generation_cost(
    model: ModelConfig,
    output_count: int,
    predict_time_seconds: float | None = None,
    output_has_video: bool = False,
) -> float:
    """Estimate the USD cost of a finished generation.

    Video is billed per second of predict time (5s when unknown), images per
    output. Both quantities are floored at 1. A missing or non-finite predict
    time falls back to the 5s default.
    """
    if output_has_video or model.type == "video":
        rate = VIDEO_PER_SECOND_COST.get(model.id, DEFAULT_VIDEO_PER_SECOND_COST)
        seconds = predict_time_seconds
        if seconds is None or not math.isfinite(seconds):
            seconds = DEFAULT_VIDEO_SECONDS
        amount = rate * max(Decimal(1), Decimal(str(seconds)))
    else:
        rate = IMAGE_MODEL_COST.get(model.id, DEFAULT_IMAGE_COST)
        amount = rate * max(1, output_count)

    return float(amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP))
