"""Provider adapter tests.

Replicate is exercised through a fake SDK client, Gemini through an
httpx.MockTransport; no network access is needed.
"""

from types import SimpleNamespace

import httpx
import pytest

from sigil.services.exceptions import ProviderAPIError
from sigil.services.models.adapters import gemini as gemini_module
from sigil.services.models.adapters import replicate as replicate_module
from sigil.services.models.adapters.fal import FAL_SEEDREAM_4_CONFIG, FalAdapter
from sigil.services.models.adapters.gemini import (
    NANO_BANANA_CONFIG,
    VEO_3_1_CONFIG,
    GeminiAdapter,
    is_quota_exhausted_error,
)
from sigil.services.models.adapters.kling import KLING_OFFICIAL_CONFIG, KlingOfficialAdapter
from sigil.services.models.adapters.replicate import (
    KLING_2_6_CONFIG,
    SEEDREAM_4_CONFIG,
    ReplicateAdapter,
    normalize_output_urls,
    resolution_label,
)
from sigil.services.models.base import (
    BaseModelAdapter,
    GenerationRequest,
    GenerationResponse,
    OutputArtifact,
)


@pytest.fixture
def replicate_settings(settings):
    return settings.model_copy(
        update={"replicate_api_token": "r8_test", "replicate_poll_interval_seconds": 0}
    )


@pytest.fixture
def stub_replicate(monkeypatch):
    """Replace ReplicateAdapter.generate, recording which model it ran."""
    calls: list[tuple[str, GenerationRequest]] = []
    state = {"response": None}

    async def fake_generate(self, request):
        calls.append((self.config.id, request))
        if state["response"] is not None:
            return state["response"]
        return GenerationResponse(
            id="pred-1",
            status="completed",
            outputs=[OutputArtifact(url="https://replicate.delivery/out.png", width=1, height=1)],
        )

    monkeypatch.setattr(ReplicateAdapter, "generate", fake_generate)
    return SimpleNamespace(calls=calls, state=state)


# Base contract


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["", "   "])
async def test_blank_prompt_rejected_before_upstream(replicate_settings, prompt):
    adapter = ReplicateAdapter(SEEDREAM_4_CONFIG, replicate_settings)

    with pytest.raises(ValueError, match="Prompt is required"):
        await adapter.generate(GenerationRequest(prompt=prompt))


@pytest.mark.asyncio
async def test_check_status_not_implemented(settings):
    adapter = BaseModelAdapter(SEEDREAM_4_CONFIG, settings)

    with pytest.raises(NotImplementedError, match="job-123"):
        await adapter.check_status("job-123")


# Replicate


def test_normalize_output_urls():
    assert normalize_output_urls("https://a") == ["https://a"]
    assert normalize_output_urls(["https://a", 3, "https://b"]) == ["https://a", "https://b"]
    assert normalize_output_urls({"url": "https://a"}) == ["https://a"]
    assert normalize_output_urls({"urls": ["https://a", None]}) == ["https://a"]
    assert normalize_output_urls(None) == []
    assert normalize_output_urls(42) == []


def test_resolution_label():
    assert resolution_label(1024) == "1K"
    assert resolution_label(2048) == "2K"
    assert resolution_label(4096) == "4K"
    assert resolution_label(1024, with_1k=False) == "2K"


def test_seedream_input(replicate_settings):
    adapter = ReplicateAdapter(SEEDREAM_4_CONFIG, replicate_settings)

    model_input = adapter.build_image_input(
        GenerationRequest(prompt="p", num_outputs=9, seed=7, reference_image="https://ref")
    )

    assert model_input["max_images"] == 4
    assert model_input["size"] == "2K"
    assert model_input["image_input"] == ["https://ref"]
    assert model_input["seed"] == 7


def test_video_input(replicate_settings):
    adapter = ReplicateAdapter(KLING_2_6_CONFIG, replicate_settings)

    model_input = adapter.build_video_input(
        GenerationRequest(
            prompt="p",
            negative_prompt="blur",
            begin_frame="https://f0",
            extra={"duration": 10, "generateAudio": False, "endFrameImageUrl": "https://f1"},
        )
    )

    assert model_input == {
        "prompt": "p",
        "duration": 10,
        "aspect_ratio": "16:9",
        "generate_audio": False,
        "start_image": "https://f0",
        "end_image": "https://f1",
        "negative_prompt": "blur",
    }


@pytest.mark.asyncio
async def test_replicate_missing_token_is_failed_response(settings):
    result = await ReplicateAdapter(SEEDREAM_4_CONFIG, settings).generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "failed"
    assert "REPLICATE_API_TOKEN" in result.error


class FakePrediction:
    def __init__(self, statuses, output=None, error=None):
        self.id = "pred-42"
        self._statuses = list(statuses)
        self.status = self._statuses.pop(0)
        self.output = output
        self.error = error
        self.metrics = {"predict_time": 7.5}

    def reload(self):
        if self._statuses:
            self.status = self._statuses.pop(0)


def fake_client_factory(prediction, created):
    class FakeClient:
        def __init__(self, api_token):
            self.api_token = api_token
            self.models = SimpleNamespace(
                get=lambda path: SimpleNamespace(latest_version=SimpleNamespace(id=f"{path}@v1"))
            )
            self.predictions = SimpleNamespace(create=self._create)

        def _create(self, version, input):
            created.append((version, input))
            return prediction

    return FakeClient


@pytest.mark.asyncio
async def test_replicate_video_prediction(monkeypatch, replicate_settings):
    created = []
    prediction = FakePrediction(
        ["starting", "processing", "succeeded"], output="https://replicate.delivery/v.mp4"
    )
    monkeypatch.setattr(
        replicate_module.replicate, "Client", fake_client_factory(prediction, created)
    )

    result = await ReplicateAdapter(KLING_2_6_CONFIG, replicate_settings).generate(
        GenerationRequest(prompt="waves", aspect_ratio="9:16")
    )

    assert result.status == "completed"
    assert created[0][0] == "kwaivgi/kling-v2.6@v1"
    assert result.metrics.predict_time == 7.5
    output = result.outputs[0]
    assert (output.url, output.width, output.height, output.duration) == (
        "https://replicate.delivery/v.mp4",
        720,
        1280,
        5.0,
    )


@pytest.mark.asyncio
async def test_replicate_failed_prediction(monkeypatch, replicate_settings):
    prediction = FakePrediction(["processing", "failed"], error="NSFW content detected")
    monkeypatch.setattr(replicate_module.replicate, "Client", fake_client_factory(prediction, []))

    result = await ReplicateAdapter(SEEDREAM_4_CONFIG, replicate_settings).generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "failed"
    assert result.error == "NSFW content detected"


@pytest.mark.asyncio
async def test_replicate_poll_budget(monkeypatch, replicate_settings):
    monkeypatch.setitem(replicate_module.MAX_POLL_ATTEMPTS, "image", 3)
    prediction = FakePrediction(["processing"])
    monkeypatch.setattr(replicate_module.replicate, "Client", fake_client_factory(prediction, []))

    result = await ReplicateAdapter(SEEDREAM_4_CONFIG, replicate_settings).generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "failed"
    assert result.error == "Replicate generation timeout"


# Delegating adapters


@pytest.mark.asyncio
async def test_kling_official_delegates_with_metadata(settings, stub_replicate):
    result = await KlingOfficialAdapter(KLING_OFFICIAL_CONFIG, settings).generate(
        GenerationRequest(prompt="p")
    )

    assert stub_replicate.calls[0][0] == "kling-2.6"
    assert result.metadata["routedFrom"] == "kling-official"
    assert result.metadata["routedTo"] == "kling-2.6"


@pytest.mark.asyncio
async def test_fal_failure_gets_default_error(settings, stub_replicate):
    stub_replicate.state["response"] = GenerationResponse(id="x", status="failed")

    result = await FalAdapter(FAL_SEEDREAM_4_CONFIG, settings).generate(
        GenerationRequest(prompt="p")
    )

    assert stub_replicate.calls[0][0] == "seedream-4"
    assert result.status == "failed"
    assert result.error == "FAL route failed"
    assert "routedFrom" not in result.metadata


# Gemini


def gemini_image_body(mime: str = "image/png", data: str = "aGVsbG8=") -> dict:
    part = {"inlineData": {"mimeType": mime, "data": data}}
    return {"candidates": [{"content": {"parts": [part]}}]}


def make_gemini(settings, handler, config=NANO_BANANA_CONFIG, **overrides) -> GeminiAdapter:
    adapter = GeminiAdapter(config, settings.model_copy(update=overrides))
    adapter.transport = httpx.MockTransport(handler)
    adapter.image_delay_seconds = 0
    adapter.retry_delay_scale = 0
    return adapter


@pytest.mark.asyncio
async def test_gemini_returns_data_urls(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=gemini_image_body())

    adapter = make_gemini(settings, handler, gemini_api_key="g-key")
    result = await adapter.generate(GenerationRequest(prompt="p", aspect_ratio="16:9"))

    assert result.status == "completed"
    assert result.outputs[0].url == "data:image/png;base64,aGVsbG8="
    assert (result.outputs[0].width, result.outputs[0].height) == (1344, 768)
    assert result.metadata["backend"] == "gemini-api"
    assert seen[0].headers["x-goog-api-key"] == "g-key"


@pytest.mark.asyncio
async def test_gemini_retries_transient_errors(settings):
    responses = [
        httpx.Response(503, json={"error": {"message": "The model is overloaded"}}),
        httpx.Response(429, json={"error": {"message": "Too many requests"}}),
        httpx.Response(200, json=gemini_image_body()),
    ]

    def handler(request):
        return responses.pop(0)

    result = await make_gemini(settings, handler, gemini_api_key="g").generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "completed"
    assert responses == []


@pytest.mark.asyncio
async def test_gemini_quota_exhaustion_stops_retrying(settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            429, json={"error": {"message": "Quota exceeded for metric, limit: 0"}}
        )

    result = await make_gemini(settings, handler, gemini_api_key="g").generate(
        GenerationRequest(prompt="p")
    )

    assert len(calls) == 1
    assert result.status == "failed"
    assert "limit: 0" in result.error


@pytest.mark.asyncio
async def test_gemini_safety_block(settings):
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    result = await make_gemini(settings, handler, gemini_api_key="g").generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "failed"
    assert result.error.startswith("Content blocked by safety filter")


@pytest.mark.asyncio
async def test_gemini_falls_back_to_replicate_per_image(settings, stub_replicate):
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Bad image config"}})

    result = await make_gemini(
        settings, handler, gemini_api_key="g", replicate_api_token="r8"
    ).generate(GenerationRequest(prompt="p", aspect_ratio="3:4", num_outputs=2))

    assert result.status == "completed"
    assert len(result.outputs) == 2
    assert [call[0] for call in stub_replicate.calls] == ["nano-banana-backup"] * 2
    assert all(call[1].num_outputs == 1 for call in stub_replicate.calls)
    assert (result.outputs[0].width, result.outputs[0].height) == (864, 1184)
    assert result.metadata["backend"] == "replicate-fallback"


@pytest.mark.asyncio
async def test_gemini_without_key_uses_replicate(settings, stub_replicate):
    def handler(request):
        raise AssertionError("Gemini must not be called without a key")

    result = await make_gemini(settings, handler, replicate_api_token="r8").generate(
        GenerationRequest(prompt="p")
    )

    assert result.status == "completed"
    assert result.metadata["backend"] == "replicate"


@pytest.mark.asyncio
async def test_veo_delegates_to_kling(settings, stub_replicate):
    adapter = GeminiAdapter(VEO_3_1_CONFIG, settings)

    result = await adapter.generate(GenerationRequest(prompt="p"))

    assert stub_replicate.calls[0][0] == "kling-2.6"
    assert result.metadata == {"routedFrom": "veo-3.1", "routedTo": "kling-2.6"}


def test_gemini_payload_inlines_data_url_references(settings):
    adapter = GeminiAdapter(NANO_BANANA_CONFIG, settings)

    payload = adapter.build_payload(
        GenerationRequest(
            prompt="p",
            resolution=4096,
            reference_images=["data:image/jpeg;base64,QUJD", "https://not-inlined"],
        )
    )

    parts = payload["contents"][0]["parts"]
    assert parts[1] == {"inlineData": {"mimeType": "image/jpeg", "data": "QUJD"}}
    assert len(parts) == 2
    assert payload["generationConfig"]["imageConfig"]["imageSize"] == "4K"


def test_quota_detection_from_details():
    error = ProviderAPIError(
        "Too many requests", status=429, details=[{"reason": "RATE_LIMIT_EXCEEDED"}]
    )
    assert is_quota_exhausted_error(error)
    assert not is_quota_exhausted_error(ProviderAPIError("Too many requests", status=429))
    assert gemini_module.MAX_RETRIES == 4
