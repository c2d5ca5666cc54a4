"""Provider adapter contract and model catalog types.

Every provider adapter implements the same async ``generate`` contract; the
differences between providers are confined to request/response translation.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

ModelType = Literal["image", "video"]
ResponseStatus = Literal["processing", "completed", "failed"]


@dataclass(frozen=True)
class Pricing:
    """Pricing hints advertised for a model."""

    per_image: float | None = None
    per_second: float | None = None
    currency: str = "USD"


@dataclass(frozen=True)
class ModelConfig:
    """Static description of a provider model."""

    id: str
    name: str
    provider: str
    type: ModelType
    description: str
    default_aspect_ratio: str | None = None
    supported_aspect_ratios: tuple[str, ...] = ()
    max_resolution: int | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)
    pricing: Pricing | None = None

    def to_dict(self) -> dict[str, Any]:
        """Catalog representation returned by the models endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "type": self.type,
            "description": self.description,
            "defaultAspectRatio": self.default_aspect_ratio,
            "supportedAspectRatios": list(self.supported_aspect_ratios),
            "maxResolution": self.max_resolution,
            "capabilities": dict(self.capabilities),
            "pricing": (
                {
                    "perImage": self.pricing.per_image,
                    "perSecond": self.pricing.per_second,
                    "currency": self.pricing.currency,
                }
                if self.pricing
                else None
            ),
        }


@dataclass
class GenerationRequest:
    """Normalized adapter input.

    ``extra`` carries every parameter-bag field verbatim so adapters can read
    provider-specific knobs without the lifecycle knowing about them.
    """

    prompt: str
    negative_prompt: str | None = None
    aspect_ratio: str | None = None
    resolution: int | None = None
    num_outputs: int | None = None
    seed: int | None = None
    reference_image: str | None = None
    reference_images: list[str] | None = None
    begin_frame: str | None = None
    end_frame: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def first_reference_image(self) -> str | None:
        if self.reference_image:
            return self.reference_image
        if self.reference_images:
            return self.reference_images[0]
        return None


@dataclass
class OutputArtifact:
    """One provider-hosted artifact."""

    url: str
    width: int
    height: int
    duration: float | None = None


@dataclass
class GenerationMetrics:
    predict_time: float | None = None
    input_token_count: int | None = None
    output_token_count: int | None = None


@dataclass
class GenerationResponse:
    """Uniform adapter output."""

    id: str
    status: ResponseStatus
    outputs: list[OutputArtifact] = field(default_factory=list)
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    metrics: GenerationMetrics | None = None


class BaseModelAdapter:
    """Base class for provider adapters.

    Subclasses implement ``generate``. ``settings`` carries provider
    credentials; adapters read only the fields they need.
    """

    def __init__(self, config: ModelConfig, settings: Any):
        self.config = config
        self.settings = settings

    def get_config(self) -> ModelConfig:
        return self.config

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        raise NotImplementedError

    async def check_status(self, generation_id: str) -> GenerationResponse:
        """Poll a provider-side job.

        Raises:
            NotImplementedError: Always, unless the adapter supports async polling
        """
        raise NotImplementedError(
            f"Status checking not implemented for this model: {generation_id}"
        )

    def validate_request(self, request: GenerationRequest) -> None:
        """Reject requests before any upstream call.

        Raises:
            ValueError: If prompt is empty or whitespace-only
        """
        if not request.prompt or not request.prompt.strip():
            raise ValueError("Prompt is required")


def with_delegation_metadata(
    result: GenerationResponse, routed_from: str, routed_to: str, default_error: str
) -> GenerationResponse:
    """Tag a delegated adapter result so callers can tell it from resolver routing.

    Completed results gain ``routedFrom``/``routedTo`` metadata; failed results
    get ``default_error`` when the delegate did not report one.
    """
    if result.status == "completed":
        result.metadata = {**result.metadata, "routedFrom": routed_from, "routedTo": routed_to}
        return result
    result.error = result.error or default_error
    return result
