"""Gemini adapter for image generation (and Veo video via delegation).

Images are generated one call at a time against the Gemini REST API with
retry on rate limits and 5xx responses. When a call keeps failing and a
Replicate token exists, that image is produced by the Replicate backup model
instead. Without a Gemini key every image goes through Replicate.
"""

import asyncio
import random
import re
import time
from dataclasses import replace
from typing import Any

import httpx
import structlog

from sigil.services.exceptions import ProviderAPIError
from sigil.services.models.adapters.replicate import (
    KLING_2_6_CONFIG,
    NANO_BANANA_BACKUP_CONFIG,
    ReplicateAdapter,
    resolution_label,
)
from sigil.services.models.base import (
    BaseModelAdapter,
    GenerationRequest,
    GenerationResponse,
    ModelConfig,
    OutputArtifact,
    Pricing,
    with_delegation_metadata,
)

logger = structlog.get_logger(__name__)

NANO_BANANA_CONFIG = ModelConfig(
    id="gemini-nano-banana-pro",
    name="Nano Banana Pro",
    provider="google",
    type="image",
    description="Gemini 3 Pro Image - Advanced image generation with superior quality",
    default_aspect_ratio="1:1",
    max_resolution=4096,
    supported_aspect_ratios=(
        "1:1",
        "2:3",
        "3:2",
        "3:4",
        "4:3",
        "4:5",
        "5:4",
        "9:16",
        "16:9",
        "21:9",
    ),
    capabilities={
        "editing": True,
        "text-2-image": True,
        "image-2-image": True,
        "multiImageEditing": True,
        "maxReferenceImages": 14,
    },
    pricing=Pricing(per_image=0.04),
)

VEO_3_1_CONFIG = ModelConfig(
    id="veo-3.1",
    name="Veo 3.1",
    provider="google",
    type="video",
    description="High quality text-to-video generation model.",
    capabilities={"text-2-video": True, "image-2-video": True},
    pricing=Pricing(per_second=0.02),
)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL = "gemini-3-pro-image-preview"
MAX_RETRIES = 4

ASPECT_RATIO_DIMS = {
    "1:1": (1024, 1024),
    "2:3": (832, 1248),
    "3:2": (1248, 832),
    "3:4": (864, 1184),
    "4:3": (1184, 864),
    "4:5": (896, 1152),
    "5:4": (1152, 896),
    "9:16": (768, 1344),
    "16:9": (1344, 768),
    "21:9": (1536, 672),
}

_DATA_URL = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)
_QUOTA_EXHAUSTED = re.compile(r"limit:\s*0|daily.?limit|quota.?exhaust", re.IGNORECASE)


def is_rate_limit_error(error: Exception) -> bool:
    status = getattr(error, "status", None)
    return status == 429 or bool(
        re.search(r"429|rate.?limit|resource.?exhausted", str(error), re.I)
    )


def is_transient_error(error: Exception) -> bool:
    status = getattr(error, "status", None)
    return status in (502, 503, 504) or bool(
        re.search(r"502|503|504|service.?unavailable", str(error), re.I)
    )


def is_quota_exhausted_error(error: Exception) -> bool:
    """Daily/zero quota: retrying the same key cannot succeed."""
    if _QUOTA_EXHAUSTED.search(str(error)):
        return True
    details = getattr(error, "details", None) or []
    return any(
        re.search(r"RATE_LIMIT_EXCEEDED|DAILY_LIMIT_EXCEEDED", str(d.get("reason", "")), re.I)
        for d in details
        if isinstance(d, dict)
    )


def dimensions_for(aspect_ratio: str) -> tuple[int, int]:
    return ASPECT_RATIO_DIMS.get(aspect_ratio, (1024, 1024))


class GeminiAdapter(BaseModelAdapter):
    """Adapter for Google models (Nano Banana Pro images, Veo video)."""

    # Seconds between consecutive images of one request
    image_delay_seconds = 2.0
    # Multiplier applied to retry backoff delays
    retry_delay_scale = 1.0
    # Optional httpx transport override
    transport: httpx.AsyncBaseTransport | None = None

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.validate_request(request)
        try:
            if self.config.type == "image":
                return await self._generate_images(request)
            return await self._generate_video(request)
        except Exception as e:
            logger.warning(
                "gemini.generation_failed",
                model_id=self.config.id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return GenerationResponse(
                id=f"error-{int(time.time() * 1000)}",
                status="failed",
                error=str(e) or "Generation failed",
            )

    async def _generate_images(self, request: GenerationRequest) -> GenerationResponse:
        num_images = max(1, request.num_outputs or 1)
        use_gemini = bool(self.settings.gemini_api_key)
        can_fallback = bool(self.settings.replicate_api_token)

        if not use_gemini:
            logger.info("gemini.no_api_key", fallback="replicate")

        outputs: list[OutputArtifact] = []
        last_error: str | None = None
        used_replicate = not use_gemini

        for index in range(num_images):
            try:
                if use_gemini:
                    outputs.append(await self._generate_single_image_with_retry(request))
                else:
                    outputs.append(await self._generate_image_via_replicate(request))
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "gemini.image_failed", index=index + 1, total=num_images, error=last_error
                )
                if use_gemini and can_fallback:
                    try:
                        outputs.append(await self._generate_image_via_replicate(request))
                        used_replicate = True
                    except Exception as fallback_error:
                        logger.warning(
                            "gemini.replicate_fallback_failed", error=str(fallback_error)
                        )

            if index < num_images - 1:
                await asyncio.sleep(self.image_delay_seconds)

        if not outputs:
            raise ProviderAPIError(last_error or "All image generations failed")

        backend = "gemini-api"
        if used_replicate:
            backend = "replicate-fallback" if use_gemini else "replicate"
        return GenerationResponse(
            id=f"gen-{int(time.time() * 1000)}",
            status="completed",
            outputs=outputs,
            metadata={"model": self.config.id, "backend": backend},
        )

    async def _generate_single_image_with_retry(self, request: GenerationRequest) -> OutputArtifact:
        last_error: Exception | None = None

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                return await self._call_gemini_api(request)
            except ProviderAPIError as e:
                last_error = e

                if is_quota_exhausted_error(e):
                    logger.warning("gemini.quota_exhausted")
                    break

                transient = is_transient_error(e)
                retryable = is_rate_limit_error(e) or transient
                if not retryable or attempt == MAX_RETRIES:
                    break

                base_delay = min((attempt + 1) * 2.0, 16.0) if transient else 2.0 ** (attempt - 1)
                delay = (base_delay + random.random() * base_delay * 0.5) * self.retry_delay_scale
                logger.info(
                    "gemini.retrying",
                    attempt=attempt,
                    max_retries=MAX_RETRIES,
                    reason="5xx" if transient else "429",
                    delay_seconds=round(delay, 2),
                )
                await asyncio.sleep(delay)

        raise last_error or ProviderAPIError("Generation failed after retries")

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        """Translate a request into a generateContent payload."""
        parts: list[dict[str, Any]] = [{"text": request.prompt}]

        reference_images = request.reference_images or (
            [request.reference_image] if request.reference_image else []
        )
        for image in reference_images:
            match = _DATA_URL.match(image)
            if match:
                parts.append({"inlineData": {"mimeType": match.group(1), "data": match.group(2)}})

        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["image"],
                "temperature": 1.0,
                "imageConfig": {
                    "aspectRatio": request.aspect_ratio or "1:1",
                    "imageSize": resolution_label(request.resolution or 1024),
                },
            },
        }

    async def _call_gemini_api(self, request: GenerationRequest) -> OutputArtifact:
        """Call generateContent once and extract the first image part.

        Raises:
            ProviderAPIError: Error response, safety block, or no image in the reply
        """
        endpoint = f"{GEMINI_BASE_URL}/models/{GEMINI_MODEL}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=120.0, transport=self.transport) as client:
                response = await client.post(
                    endpoint,
                    headers={"x-goog-api-key": self.settings.gemini_api_key},
                    json=self.build_payload(request),
                )
        except httpx.TimeoutException as e:
            raise ProviderAPIError(f"Gemini request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderAPIError(f"Gemini network error: {e}") from e

        if response.status_code >= 400:
            try:
                error_body = response.json().get("error", {})
            except ValueError:
                error_body = {}
            message = error_body.get("message") or f"Gemini API error {response.status_code}"
            raise ProviderAPIError(
                message, status=response.status_code, details=error_body.get("details")
            )

        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise ProviderAPIError(
                    f"Content blocked by safety filter: {block_reason}. Try rephrasing your prompt."
                )
            raise ProviderAPIError(
                "No candidates returned. The prompt may have been filtered. Try rephrasing."
            )

        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData")
            if (
                isinstance(inline, dict)
                and str(inline.get("mimeType", "")).startswith("image/")
                and inline.get("data")
            ):
                width, height = dimensions_for(request.aspect_ratio or "1:1")
                return OutputArtifact(
                    url=f"data:{inline['mimeType']};base64,{inline['data']}",
                    width=width,
                    height=height,
                )

        raise ProviderAPIError(
            "Gemini returned a response but no image data. This may be transient, please try again."
        )

    async def _generate_image_via_replicate(self, request: GenerationRequest) -> OutputArtifact:
        if not self.settings.replicate_api_token:
            raise ProviderAPIError(
                "REPLICATE_API_TOKEN not configured. Cannot use Replicate fallback."
            )
        delegate = ReplicateAdapter(NANO_BANANA_BACKUP_CONFIG, self.settings)
        result = await delegate.generate(replace(request, num_outputs=1))
        if result.status != "completed" or not result.outputs:
            raise ProviderAPIError(result.error or "Replicate returned no outputs")

        width, height = dimensions_for(request.aspect_ratio or "1:1")
        return OutputArtifact(url=result.outputs[0].url, width=width, height=height)

    async def _generate_video(self, request: GenerationRequest) -> GenerationResponse:
        delegate = ReplicateAdapter(KLING_2_6_CONFIG, self.settings)
        result = await delegate.generate(request)
        return with_delegation_metadata(
            result, self.config.id, KLING_2_6_CONFIG.id, "Video generation failed"
        )
