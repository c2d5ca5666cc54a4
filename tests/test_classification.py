"""Tests for generation failure classification."""

import pytest

from sigil.services.exceptions import ProviderAPIError, UnknownModelError
from sigil.services.generation.classification import (
    ERROR_CATEGORIES,
    classify_error,
    user_facing_message,
)


@pytest.mark.parametrize(
    ("error", "category", "retryable"),
    [
        ("429 Too Many Requests", "rate_limited", True),
        ("RESOURCE_EXHAUSTED: quota exceeded", "rate_limited", True),
        ("503 Service Unavailable", "upstream_unavailable", True),
        ("Content blocked by safety filter: SAFETY", "content_safety", False),
        ("Invalid aspect ratio", "validation", False),
        ("Unauthorized: bad token", "auth", False),
        ("Request timed out after 30s", "timeout", True),
        ("ECONNRESET", "timeout", True),
        ("Generation did not produce outputs", "internal", True),
    ],
)
def test_message_rules(error, category, retryable):
    classified = classify_error(error)

    assert classified.category == category
    assert classified.retryable is retryable
    assert classified.category in ERROR_CATEGORIES


def test_rate_limit_wins_over_later_rules():
    """First matching rule wins: 'quota' beats 'invalid'."""
    assert classify_error("invalid request: quota exhausted").category == "rate_limited"


def test_status_from_exception_attribute():
    classified = classify_error(ProviderAPIError("upstream said no", status=401))

    assert classified.category == "upstream_unavailable"  # 'upstream' text matches first
    assert classify_error(ProviderAPIError("denied", status=401)).category == "auth"
    assert classify_error(ProviderAPIError("nope", status=400)).category == "validation"


def test_explicit_status_argument():
    assert classify_error("nope", status=502).category == "upstream_unavailable"


def test_timeout_exception_type():
    assert classify_error(TimeoutError()).category == "timeout"


def test_user_facing_messages_never_leak_raw_error():
    for raw in ("429 secret-key-abc", "Traceback: KeyError 'x'"):
        classified = classify_error(raw)
        assert raw not in user_facing_message(classified)


def test_internal_message():
    message = user_facing_message(classify_error("KeyError: 'url'"))
    assert message == "Something went wrong during generation. Please try again."


def test_unknown_model_is_not_retryable():
    classified = classify_error(UnknownModelError("Unknown model: kling-2.6"))

    assert classified.category == "internal"
    assert classified.retryable is False
    assert classify_error("Unknown model: kling-2.6").retryable is True
