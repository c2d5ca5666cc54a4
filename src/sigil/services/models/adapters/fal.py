"""FAL adapter - delegates to Replicate Seedream until a native FAL route exists."""

from sigil.services.models.adapters.replicate import SEEDREAM_4_CONFIG, ReplicateAdapter
from sigil.services.models.base import (
    BaseModelAdapter,
    GenerationRequest,
    GenerationResponse,
    ModelConfig,
    Pricing,
    with_delegation_metadata,
)

FAL_SEEDREAM_4_CONFIG = ModelConfig(
    id="fal-seedream-4",
    name="FAL Seedream 4",
    provider="fal",
    type="image",
    description="FAL image model route.",
    capabilities={"text-2-image": True},
    pricing=Pricing(per_image=0.04),
)


class FalAdapter(BaseModelAdapter):
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.validate_request(request)
        delegate = ReplicateAdapter(SEEDREAM_4_CONFIG, self.settings)
        result = await delegate.generate(request)
        return with_delegation_metadata(
            result, self.config.id, SEEDREAM_4_CONFIG.id, "FAL route failed"
        )
