"""Failure classification for generations.

Maps a raw provider/processing failure to a category, a retryable flag and a
user-facing message. The category and flag are stored on the failed
generation; the UI uses them to decide whether to offer a retry.
"""

import re
from dataclasses import dataclass

from sigil.services.exceptions import UnknownModelError

ERROR_CATEGORIES = (
    "upstream_unavailable",
    "rate_limited",
    "content_safety",
    "validation",
    "auth",
    "timeout",
    "internal",
)


@dataclass(frozen=True)
class ClassifiedError:
    """Result of classifying a failure."""

    category: str
    message: str  # Raw message (never shown to end users)
    label: str
    http_status: int
    retryable: bool


_RATE_LIMIT = re.compile(r"429|rate.?limit|resource.?exhausted|quota", re.IGNORECASE)
_UNAVAILABLE = re.compile(r"502|503|504|service.?unavailable|upstream|unavailable", re.IGNORECASE)
_SAFETY = re.compile(r"safety|blocked|filtered|content.?policy|harmful", re.IGNORECASE)
_VALIDATION = re.compile(r"validation|invalid|bad.?request", re.IGNORECASE)
_AUTH = re.compile(r"auth|unauthorized|forbidden", re.IGNORECASE)
_TIMEOUT = re.compile(
    r"timeout|timed.?out|aborted|ETIMEDOUT|ECONNRESET|connection.?reset", re.IGNORECASE
)


def classify_error(error: BaseException | str, status: int | None = None) -> ClassifiedError:
    """Classify a failure into a generation error category.

    Classification rules (first match wins):
        - 429 / rate limit / quota → rate_limited (retryable)
        - 502/503/504 / unavailable → upstream_unavailable (retryable)
        - safety / blocked / content policy → content_safety
        - 400 / invalid → validation
        - 401/403 / unauthorized → auth
        - timeout / aborted / connection reset → timeout (retryable)
        - unknown model → internal (not retryable)
        - anything else → internal (retryable)

    Args:
        error: Exception or raw error message
        status: HTTP status if known; read from error.status when omitted

    Returns:
        ClassifiedError describing the failure
    """
    message = str(error)
    if status is None and isinstance(error, BaseException):
        status = getattr(error, "status", None)

    if status == 429 or _RATE_LIMIT.search(message):
        return ClassifiedError("rate_limited", message, "Rate limited by provider", 429, True)

    if status in (502, 503, 504) or _UNAVAILABLE.search(message):
        return ClassifiedError(
            "upstream_unavailable", message, "Provider temporarily unavailable", 502, True
        )

    if _SAFETY.search(message):
        return ClassifiedError(
            "content_safety", message, "Content blocked by safety filter", 422, False
        )

    if status == 400 or _VALIDATION.search(message):
        return ClassifiedError("validation", message, "Invalid request", 400, False)

    if status in (401, 403) or _AUTH.search(message):
        return ClassifiedError("auth", message, "Authentication error", 401, False)

    if _TIMEOUT.search(message) or isinstance(error, (TimeoutError, ConnectionResetError)):
        return ClassifiedError("timeout", message, "Request timed out", 504, True)

    if isinstance(error, UnknownModelError):
        return ClassifiedError("internal", message, "Unknown model", 500, False)

    # TODO: split permanent internal faults (malformed provider payloads) from transient ones
    return ClassifiedError("internal", message, "Generation failed", 500, True)


_USER_MESSAGES = {
    "rate_limited": "The AI provider is experiencing high demand. Please try again in a moment.",
    "upstream_unavailable": (
        "The AI provider is temporarily unavailable. This is usually resolved quickly, "
        "please retry."
    ),
    "content_safety": (
        "This prompt was blocked by the provider's safety filter. Try rephrasing your prompt."
    ),
    "validation": "The generation request was invalid. Please check your settings and try again.",
    "auth": "There was an authentication issue with the AI provider. Contact an admin.",
    "timeout": (
        "The generation timed out waiting for a response from the provider. Please try again."
    ),
}


def user_facing_message(classified: ClassifiedError) -> str:
    """Human-readable, category-appropriate message stored on failed generations."""
    return _USER_MESSAGES.get(
        classified.category, "Something went wrong during generation. Please try again."
    )
