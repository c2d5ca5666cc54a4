"""Tests for generation cost estimation."""

import pytest

from sigil.services.cost import calculate_generation_cost
from sigil.services.models.base import ModelConfig


def image_model(model_id: str = "seedream-4") -> ModelConfig:
    return ModelConfig(id=model_id, name=model_id, provider="p", type="image", description="")


def video_model(model_id: str = "kling-2.6") -> ModelConfig:
    return ModelConfig(id=model_id, name=model_id, provider="p", type="video", description="")


def test_three_images():
    assert calculate_generation_cost(image_model(), 3) == 0.12


@pytest.mark.parametrize("count", [0, -4])
def test_image_count_is_floored_at_one(count):
    assert calculate_generation_cost(image_model(), count) == 0.04


def test_unknown_image_model_uses_default_rate():
    assert calculate_generation_cost(image_model("mystery"), 2) == 0.08


def test_image_cost_monotonic_in_output_count():
    costs = [calculate_generation_cost(image_model(), n) for n in range(1, 6)]
    assert costs == sorted(costs)


def test_video_defaults_to_five_seconds():
    assert calculate_generation_cost(video_model(), 1) == 0.05


def test_video_uses_predict_time_and_model_rate():
    assert calculate_generation_cost(video_model("veo-3.1"), 1, predict_time_seconds=12.5) == 0.25


def test_video_seconds_floored_at_one():
    assert calculate_generation_cost(video_model(), 1, predict_time_seconds=0.2) == 0.01


def test_video_flag_overrides_image_model():
    """An image-typed model that returned video is billed per second."""
    cost = calculate_generation_cost(
        image_model("mystery"), 4, predict_time_seconds=10, output_has_video=True
    )
    assert cost == 0.1


def test_six_decimal_rounding():
    cost = calculate_generation_cost(video_model(), 1, predict_time_seconds=3.3333333)
    assert cost == 0.033333


@pytest.mark.parametrize("predict_time", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_predict_time_uses_default(predict_time):
    assert calculate_generation_cost(video_model(), 1, predict_time_seconds=predict_time) == 0.05
