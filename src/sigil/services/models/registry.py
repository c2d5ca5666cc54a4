"""Model registry: maps model ids to their config and adapter class."""

from typing import Any

import structlog

from sigil.services.models.adapters import (
    FAL_SEEDREAM_4_CONFIG,
    KLING_2_6_CONFIG,
    KLING_OFFICIAL_CONFIG,
    NANO_BANANA_BACKUP_CONFIG,
    NANO_BANANA_CONFIG,
    REVE_CONFIG,
    SEEDREAM_4_CONFIG,
    VEO_3_1_CONFIG,
    FalAdapter,
    GeminiAdapter,
    KlingOfficialAdapter,
    ReplicateAdapter,
)
from sigil.services.models.base import BaseModelAdapter, ModelConfig, ModelType

logger = structlog.get_logger(__name__)


class ModelRegistry:
    """Read-only lookup of model configs and adapters after startup.

    ``get_model`` returns a fresh adapter on each call, bound to the config and
    the provider settings the registry was built with.
    """

    def __init__(self, settings: Any):
        self.settings = settings
        self._entries: dict[str, tuple[ModelConfig, type[BaseModelAdapter]]] = {}

    def register(self, config: ModelConfig, adapter_class: type[BaseModelAdapter]) -> None:
        if config.id in self._entries:
            raise ValueError(f"Model already registered: {config.id}")
        self._entries[config.id] = (config, adapter_class)

    def get_model(self, model_id: str) -> BaseModelAdapter | None:
        entry = self._entries.get(model_id)
        if entry is None:
            return None
        config, adapter_class = entry
        return adapter_class(config, self.settings)

    def get_model_config(self, model_id: str) -> ModelConfig | None:
        entry = self._entries.get(model_id)
        return entry[0] if entry else None

    def get_all_models(self) -> list[ModelConfig]:
        return [config for config, _ in self._entries.values()]

    def get_models_by_type(self, model_type: ModelType) -> list[ModelConfig]:
        return [config for config in self.get_all_models() if config.type == model_type]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._entries


def create_default_registry(settings: Any) -> ModelRegistry:
    """Build the registry with every supported provider model."""
    registry = ModelRegistry(settings)

    registry.register(NANO_BANANA_CONFIG, GeminiAdapter)
    registry.register(VEO_3_1_CONFIG, GeminiAdapter)

    registry.register(SEEDREAM_4_CONFIG, ReplicateAdapter)
    registry.register(REVE_CONFIG, ReplicateAdapter)
    registry.register(NANO_BANANA_BACKUP_CONFIG, ReplicateAdapter)
    registry.register(KLING_2_6_CONFIG, ReplicateAdapter)

    registry.register(KLING_OFFICIAL_CONFIG, KlingOfficialAdapter)
    registry.register(FAL_SEEDREAM_4_CONFIG, FalAdapter)

    logger.debug("registry.initialized", model_count=len(registry.get_all_models()))
    return registry
