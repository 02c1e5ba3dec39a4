"""Model lookup and adapter caching."""

from typing import TYPE_CHECKING

import structlog

from .base import ProviderAdapter
from .factory import create_provider_adapter
from .models import ProviderModel

if TYPE_CHECKING:
    from ..config import Settings

logger = structlog.get_logger(__name__)


class ModelCatalog:
    """Resolves model names to descriptors and adapters.

    One adapter is created lazily per protocol and reused for every
    conversation, so provider selection is a single lookup instead of
    branching at each call site.
    """

    def __init__(self, settings: "Settings", models: list[ProviderModel] | None = None):
        self._settings = settings
        self._models = {model.name: model for model in (models or settings.models)}
        if not self._models:
            raise ValueError("Model catalog requires at least one model")
        self._adapters: dict[str, ProviderAdapter] = {}

    @property
    def models(self) -> list[ProviderModel]:
        return list(self._models.values())

    @property
    def default_model(self) -> ProviderModel:
        model = self._models.get(self._settings.default_model)
        if model is None:
            return next(iter(self._models.values()))
        return model

    def get(self, name: str) -> ProviderModel:
        """Look up a model by name or id, falling back to the default model."""
        model = self._models.get(name)
        if model is None:
            model = next((m for m in self._models.values() if m.model_id == name), None)
        if model is None:
            fallback = self.default_model
            logger.warning("unknown_model", requested=name, fallback=fallback.name)
            return fallback
        return model

    @staticmethod
    def adapter_key(model: ProviderModel) -> str:
        """Factory key for the protocol that serves a model."""
        if model.provider == "openai" and model.responses_api:
            return "openai_responses"
        return model.provider

    def adapter_for(self, model: ProviderModel) -> ProviderAdapter:
        """Return the cached adapter for a model, creating it on first use."""
        key = self.adapter_key(model)
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = create_provider_adapter(key, **self._settings.provider_config(model.provider))
            self._adapters[key] = adapter
        return adapter

    def register_adapter(self, key: str, adapter: ProviderAdapter) -> None:
        """Install a pre-built adapter under a factory key."""
        self._adapters[key] = adapter

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
