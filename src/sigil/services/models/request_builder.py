"""Build adapter requests from stored generation rows."""

from typing import Any

from sigil.services.models.base import GenerationRequest

# Parameter-bag keys (camelCase, as sent by the client) mapped onto request fields
_FIELD_KEYS = {
    "prompt": "prompt",
    "negativePrompt": "negative_prompt",
    "aspectRatio": "aspect_ratio",
    "resolution": "resolution",
    "numOutputs": "num_outputs",
    "seed": "seed",
    "referenceImage": "reference_image",
    "referenceImages": "reference_images",
    "beginFrame": "begin_frame",
    "endFrame": "end_frame",
}

_INT_FIELDS = {"resolution", "num_outputs", "seed"}


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_generation_request(
    prompt: str, negative_prompt: str | None, parameters: dict[str, Any] | None
) -> GenerationRequest:
    """Merge prompt fields and the parameter bag into a GenerationRequest.

    Parameter-bag fields overwrite the prompt-level fields they share a name
    with. ``referenceImageUrl`` is folded into the reference image fields.

    Args:
        prompt: Stored prompt text
        negative_prompt: Stored negative prompt, if any
        parameters: Opaque parameter bag stored with the generation

    Returns:
        Normalized request; the whole bag is also kept in ``extra``
    """
    params = dict(parameters or {})
    values: dict[str, Any] = {"prompt": prompt, "negative_prompt": negative_prompt}

    for key, field_name in _FIELD_KEYS.items():
        if key not in params:
            continue
        value = params[key]
        if field_name in _INT_FIELDS:
            value = _coerce_int(value)
        elif field_name == "reference_images":
            value = [v for v in value if isinstance(v, str)] if isinstance(value, list) else None
        values[field_name] = value

    reference_url = params.get("referenceImageUrl")
    if isinstance(reference_url, str) and reference_url:
        values["reference_image"] = reference_url
        values["reference_images"] = [reference_url]

    values["prompt"] = "" if values["prompt"] is None else str(values["prompt"])
    return GenerationRequest(**values, extra=params)
