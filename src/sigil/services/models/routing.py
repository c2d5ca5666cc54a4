"""Credential-aware model routing.

Decides, from which provider credentials are configured, whether a requested
model should run on a fallback model instead. Pure: no I/O, no settings
lookups at call time.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ProviderCredentials:
    """Snapshot of which provider credentials are present."""

    gemini: bool = False
    fal: bool = False
    kling: bool = False
    replicate: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> "ProviderCredentials":
        return cls(
            gemini=bool(settings.gemini_api_key),
            fal=bool(settings.fal_key),
            kling=bool(settings.kling_access_key and settings.kling_secret_key),
            replicate=bool(settings.replicate_api_token),
        )


@dataclass(frozen=True)
class RoutingResult:
    model_id: str
    routed: bool
    reason: str | None = None


@dataclass(frozen=True)
class RoutingPolicy:
    primary: str
    unavailable: Callable[[ProviderCredentials], bool]
    fallback: str
    reason: str


ROUTING_POLICIES: tuple[RoutingPolicy, ...] = (
    RoutingPolicy(
        primary="gemini-2.5-flash-image",
        unavailable=lambda creds: not creds.gemini,
        fallback="nano-banana-backup",
        reason="GEMINI_API_KEY missing, routed to Replicate backup image model",
    ),
    RoutingPolicy(
        primary="veo-3.1",
        unavailable=lambda creds: not creds.gemini,
        fallback="kling-2.6",
        reason="GEMINI_API_KEY missing, routed to Replicate video model",
    ),
    RoutingPolicy(
        primary="fal-seedream-4",
        unavailable=lambda creds: not creds.fal,
        fallback="seedream-4",
        reason="FAL_KEY missing, routed to Replicate Seedream",
    ),
    RoutingPolicy(
        primary="kling-official",
        unavailable=lambda creds: not creds.kling,
        fallback="kling-2.6",
        reason="Kling official keys missing, routed to Replicate Kling",
    ),
)


def route_model(model_id: str, credentials: ProviderCredentials) -> RoutingResult:
    """Resolve the model that should actually run for ``model_id``.

    Returns the input unchanged (``routed=False``) when no policy applies.
    """
    for policy in ROUTING_POLICIES:
        if policy.primary == model_id and policy.unavailable(credentials):
            return RoutingResult(model_id=policy.fallback, routed=True, reason=policy.reason)
    return RoutingResult(model_id=model_id, routed=False)
