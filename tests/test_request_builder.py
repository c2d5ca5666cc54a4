"""Tests for building adapter requests from stored generations."""

from sigil.services.models.request_builder import normalize_generation_request


def test_prompt_fields_without_parameters():
    request = normalize_generation_request("a cat", "blurry", None)

    assert request.prompt == "a cat"
    assert request.negative_prompt == "blurry"
    assert request.extra == {}


def test_parameter_bag_overrides_prompt_fields():
    request = normalize_generation_request(
        "a cat",
        None,
        {
            "prompt": "a dog",
            "negativePrompt": "text",
            "aspectRatio": "16:9",
            "numOutputs": "3",
            "resolution": 2048,
            "seed": 42,
            "duration": 10,
        },
    )

    assert request.prompt == "a dog"
    assert request.negative_prompt == "text"
    assert request.aspect_ratio == "16:9"
    assert request.num_outputs == 3
    assert request.resolution == 2048
    assert request.seed == 42
    assert request.extra["duration"] == 10


def test_reference_image_url_normalized():
    request = normalize_generation_request(
        "p", None, {"referenceImageUrl": "https://cdn/ref.png"}
    )

    assert request.reference_image == "https://cdn/ref.png"
    assert request.reference_images == ["https://cdn/ref.png"]
    assert request.first_reference_image() == "https://cdn/ref.png"


def test_bad_numeric_values_are_dropped():
    request = normalize_generation_request("p", None, {"numOutputs": "many", "seed": True})

    assert request.num_outputs is None
    assert request.seed is None


def test_reference_images_keep_only_strings():
    request = normalize_generation_request("p", None, {"referenceImages": ["a", 3, None, "b"]})

    assert request.reference_images == ["a", "b"]


def test_frames():
    request = normalize_generation_request(
        "p", None, {"beginFrame": "https://f/0.png", "endFrame": "https://f/1.png"}
    )

    assert request.begin_frame == "https://f/0.png"
    assert request.end_frame == "https://f/1.png"
