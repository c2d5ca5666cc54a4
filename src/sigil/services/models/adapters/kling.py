"""Kling official API adapter.

Runs on Replicate's Kling 2.6 until the official signing flow is ported;
responses are tagged with routedFrom/routedTo.
"""

from sigil.services.models.adapters.replicate import KLING_2_6_CONFIG, ReplicateAdapter
from sigil.services.models.base import (
    BaseModelAdapter,
    GenerationRequest,
    GenerationResponse,
    ModelConfig,
    Pricing,
    with_delegation_metadata,
)

KLING_OFFICIAL_CONFIG = ModelConfig(
    id="kling-official",
    name="Kling Official API",
    provider="kling",
    type="video",
    description="Official Kling API route.",
    capabilities={
        "text-2-video": True,
        "image-2-video": True,
        "frame-interpolation": True,
    },
    pricing=Pricing(per_second=0.01),
)


class KlingOfficialAdapter(BaseModelAdapter):
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.validate_request(request)
        delegate = ReplicateAdapter(KLING_2_6_CONFIG, self.settings)
        result = await delegate.generate(request)
        return with_delegation_metadata(
            result, self.config.id, KLING_2_6_CONFIG.id, "Kling official route failed"
        )
