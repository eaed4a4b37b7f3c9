"""Adapter selection.

The orchestrator never branches on provider identity: it asks the registry
for an adapter matching a model binding, and on recovery looks the adapter
up again by the name persisted on the task row.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from storyreel.config import Settings, get_settings
from storyreel.errors import ConfigurationError
from storyreel.models.task import TaskKind
from storyreel.services.model_catalog import ModelBinding
from storyreel.services.providers.base import PollPolicy, ProviderAdapter, ProviderHttp
from storyreel.services.providers.chat import ChatCompletionAdapter
from storyreel.services.providers.dashscope import DashScopeVideoAdapter
from storyreel.services.providers.generic_async import GenericAsyncVideoAdapter
from storyreel.services.providers.image import GeminiImageAdapter, OpenAIImageAdapter
from storyreel.services.providers.seedance import SeedanceVideoAdapter
from storyreel.services.providers.veo_sync import VeoSyncVideoAdapter

logger = logging.getLogger(__name__)

DEFAULT_ADAPTERS: tuple[type[ProviderAdapter], ...] = (
    GenericAsyncVideoAdapter,
    DashScopeVideoAdapter,
    SeedanceVideoAdapter,
    VeoSyncVideoAdapter,
    GeminiImageAdapter,
    OpenAIImageAdapter,
    ChatCompletionAdapter,
)


def _host(url: str) -> str:
    return urlparse(url).netloc.lower()


def is_async_video_model(api_model: str, params: dict) -> bool:
    """Models served by the create-then-poll ``/v1/videos`` API."""
    return (
        params.get("mode") == "async"
        or api_model == "sora-2"
        or api_model.startswith("veo_3_1-fast")
        or "seedance" in api_model.lower()
    )


class ProviderRegistry:
    """Holds one instance of each adapter, sharing the HTTP layer."""

    def __init__(
        self,
        http: ProviderHttp,
        poll_policy: PollPolicy | None = None,
        settings: Settings | None = None,
        adapters: list[ProviderAdapter] | None = None,
    ):
        self.settings = settings or get_settings()
        if adapters is None:
            adapters = [cls(http, poll_policy, self.settings) for cls in DEFAULT_ADAPTERS]
        self._adapters: dict[str, ProviderAdapter] = {a.name: a for a in adapters}

    def get(self, name: str) -> ProviderAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise ConfigurationError(f"Unknown provider adapter: {name}") from None

    def resolve(self, kind: TaskKind, binding: ModelBinding) -> ProviderAdapter:
        """Pick the adapter for ``binding``."""
        if kind is TaskKind.TEXT:
            name = "chat"
        elif kind is TaskKind.IMAGE:
            name = "openai-image" if binding.params.get("apiFormat") == "openai-image" else "gemini-image"
        else:
            name = self._video_adapter_name(binding)
        logger.debug("Model %s (%s) → adapter %s", binding.model_id, kind.value, name)
        return self.get(name)

    def _video_adapter_name(self, binding: ModelBinding) -> str:
        base_host = _host(binding.provider_base_url)
        dashscope_host = _host(self.settings.DASHSCOPE_ENDPOINT)
        ark_host = _host(self.settings.ARK_ENDPOINT)

        if binding.provider_id == "qwen" or (base_host and base_host == dashscope_host):
            return "dashscope"
        if "seedance" in binding.api_model.lower() and (
            binding.provider_id == "doubao" or (base_host and base_host == ark_host)
        ):
            return "seedance"
        if is_async_video_model(binding.api_model, binding.params):
            return "generic-async"
        return "veo-sync"
