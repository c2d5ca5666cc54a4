"""Replicate adapter for image and video models.

Uses the synchronous Replicate SDK in a worker thread: resolve the model's
latest version, create a prediction, poll until it settles.
"""

import asyncio
import time
from typing import Any
from uuid import uuid4

import replicate
import structlog

from sigil.services.exceptions import PermanentError, ProviderAPIError, TransientError
from sigil.services.models.base import (
    BaseModelAdapter,
    GenerationMetrics,
    GenerationRequest,
    GenerationResponse,
    ModelConfig,
    OutputArtifact,
    Pricing,
)

logger = structlog.get_logger(__name__)

_IMAGE_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4")

SEEDREAM_4_CONFIG = ModelConfig(
    id="seedream-4",
    name="Seedream 4.5",
    provider="replicate",
    type="image",
    description="High-quality image generation via Replicate.",
    default_aspect_ratio="1:1",
    supported_aspect_ratios=_IMAGE_RATIOS,
    capabilities={"text-2-image": True},
    pricing=Pricing(per_image=0.04),
)

REVE_CONFIG = ModelConfig(
    id="reve",
    name="Reve",
    provider="replicate",
    type="image",
    description="Image generation via Reve on Replicate.",
    default_aspect_ratio="1:1",
    supported_aspect_ratios=_IMAGE_RATIOS,
    capabilities={"text-2-image": True},
    pricing=Pricing(per_image=0.04),
)

KLING_2_6_CONFIG = ModelConfig(
    id="kling-2.6",
    name="Kling 2.6",
    provider="replicate",
    type="video",
    description="Video generation via Kling 2.6 on Replicate.",
    capabilities={"text-2-video": True},
    pricing=Pricing(per_second=0.01),
)

NANO_BANANA_BACKUP_CONFIG = ModelConfig(
    id="nano-banana-backup",
    name="Nano Banana Backup",
    provider="replicate",
    type="image",
    description="Backup image generation route via Replicate.",
    default_aspect_ratio="1:1",
    supported_aspect_ratios=_IMAGE_RATIOS,
    capabilities={"text-2-image": True},
    pricing=Pricing(per_image=0.04),
)

MODEL_PATHS = {
    "seedream-4": "bytedance/seedream-4.5",
    "reve": "reve/create",
    "nano-banana-backup": "google/nano-banana-pro",
    "kling-2.6": "kwaivgi/kling-v2.6",
}

MAX_POLL_ATTEMPTS = {"image": 120, "video": 180}


def resolution_label(resolution: int, with_1k: bool = True) -> str:
    """Map a pixel resolution onto Replicate's size labels."""
    if resolution >= 4096:
        return "4K"
    if resolution >= 2048 or not with_1k:
        return "2K"
    return "1K"


def normalize_output_urls(output: Any) -> list[str]:
    """Extract artifact URLs from the shapes Replicate models return.

    Handles a bare string, a list of strings, ``{"url": ...}`` and
    ``{"urls": [...]}``; anything else yields no URLs.
    """
    if not output:
        return []
    if isinstance(output, str):
        return [output]
    if isinstance(output, list):
        return [item for item in output if isinstance(item, str)]
    if isinstance(output, dict):
        if isinstance(output.get("url"), str):
            return [output["url"]]
        if isinstance(output.get("urls"), list):
            return [item for item in output["urls"] if isinstance(item, str)]
    return []


class ReplicateAdapter(BaseModelAdapter):
    """Adapter for every model served through Replicate predictions."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.validate_request(request)

        if not self.settings.replicate_api_token:
            return GenerationResponse(
                id=str(uuid4()),
                status="failed",
                error=(
                    "REPLICATE_API_TOKEN is not configured. "
                    "Add it to .env and restart the server."
                ),
            )

        try:
            if self.config.type == "image":
                return await self._generate_image(request)
            return await self._generate_video(request)
        except Exception as e:
            logger.warning(
                "replicate.generation_failed",
                model_id=self.config.id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return GenerationResponse(
                id=str(uuid4()),
                status="failed",
                error=str(e) or "Replicate generation failed",
            )

    def get_model_path(self) -> str:
        try:
            return MODEL_PATHS[self.config.id]
        except KeyError:
            raise PermanentError(f"Unsupported Replicate model: {self.config.id}") from None

    def build_image_input(self, request: GenerationRequest) -> dict[str, Any]:
        """Translate a request into Replicate image model input."""
        num_outputs = request.num_outputs or 1
        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or "1:1",
        }
        reference_image = request.first_reference_image()

        if self.config.id == "seedream-4":
            model_input["size"] = resolution_label(request.resolution or 2048, with_1k=False)
            model_input["max_images"] = min(4, max(1, num_outputs))
            model_input["enhance_prompt"] = True
            if reference_image:
                model_input["image_input"] = [reference_image]

        if self.config.id == "nano-banana-backup":
            model_input["resolution"] = resolution_label(request.resolution or 1024)
            if reference_image:
                model_input["image_input"] = [reference_image]

        if request.seed is not None:
            model_input["seed"] = request.seed
        return model_input

    def build_video_input(self, request: GenerationRequest) -> dict[str, Any]:
        """Translate a request into Replicate video model input."""
        extra = request.extra
        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "duration": int(extra.get("duration") or 5),
            "aspect_ratio": request.aspect_ratio or "16:9",
            "generate_audio": extra.get("generateAudio") is not False,
        }
        start_image = request.begin_frame or request.first_reference_image()
        end_image = request.end_frame or extra.get("endFrameImageUrl")
        if start_image:
            model_input["start_image"] = start_image
        if isinstance(end_image, str) and end_image:
            model_input["end_image"] = end_image
        if request.negative_prompt:
            model_input["negative_prompt"] = request.negative_prompt
        return model_input

    def _run_prediction(self, model_path: str, model_input: dict[str, Any]) -> Any:
        """Create a prediction and block until it settles (runs in a worker thread).

        Raises:
            ProviderAPIError: Prediction failed or was canceled upstream
            TransientError: Prediction did not settle within the poll budget
        """
        client = replicate.Client(api_token=self.settings.replicate_api_token)
        model = client.models.get(model_path)
        version = model.latest_version
        if version is None:
            raise ProviderAPIError("Replicate latest model version not found")

        prediction = client.predictions.create(version=version.id, input=model_input)
        poll_interval = self.settings.replicate_poll_interval_seconds

        for _ in range(MAX_POLL_ATTEMPTS[self.config.type]):
            if prediction.status == "succeeded":
                return prediction
            if prediction.status in ("failed", "canceled"):
                raise ProviderAPIError(prediction.error or "Replicate prediction failed")
            time.sleep(poll_interval)
            prediction.reload()

        raise TransientError("Replicate generation timeout")

    async def _predict(self, model_input: dict[str, Any]) -> tuple[str, list[str], float | None]:
        prediction = await asyncio.to_thread(
            self._run_prediction, self.get_model_path(), model_input
        )
        metrics = prediction.metrics or {}
        return prediction.id, normalize_output_urls(prediction.output), metrics.get("predict_time")

    async def _generate_image(self, request: GenerationRequest) -> GenerationResponse:
        prediction_id, urls, predict_time = await self._predict(self.build_image_input(request))
        if not urls:
            raise ProviderAPIError("Replicate returned no image outputs")

        return GenerationResponse(
            id=prediction_id,
            status="completed",
            outputs=[OutputArtifact(url=url, width=1024, height=1024) for url in urls],
            metrics=GenerationMetrics(predict_time=predict_time),
        )

    async def _generate_video(self, request: GenerationRequest) -> GenerationResponse:
        model_input = self.build_video_input(request)
        prediction_id, urls, predict_time = await self._predict(model_input)
        if not urls:
            raise ProviderAPIError("Replicate returned no video outputs")

        portrait = model_input["aspect_ratio"] == "9:16"
        return GenerationResponse(
            id=prediction_id,
            status="completed",
            outputs=[
                OutputArtifact(
                    url=url,
                    width=720 if portrait else 1280,
                    height=1280 if portrait else 720,
                    duration=float(model_input["duration"]),
                )
                for url in urls
            ],
            metrics=GenerationMetrics(predict_time=predict_time),
        )
