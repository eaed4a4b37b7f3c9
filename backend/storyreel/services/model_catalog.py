from __future__ import annotations
"""Per-owner model registry — provider credentials and model bindings.

Each owner stores one JSON document (see ``ModelRegistryRecord``). A task
names a model id; :meth:`ModelCatalog.resolve` turns it into a
:class:`ModelBinding` carrying everything an adapter needs to call out.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select

from storyreel.config import Settings, get_settings
from storyreel.database import SessionFactory
from storyreel.errors import ConfigurationError
from storyreel.models.model_registry import ModelRegistryRecord
from storyreel.models.task import TaskKind

logger = logging.getLogger(__name__)

# Registry documents call the text kind "chat"
_REGISTRY_TYPES: dict[TaskKind, tuple[str, ...]] = {
    TaskKind.VIDEO: ("video",),
    TaskKind.IMAGE: ("image",),
    TaskKind.TEXT: ("chat", "text"),
}


@dataclass(frozen=True)
class ModelBinding:
    """A resolved model: which provider, which credentials, which API model."""

    model_id: str
    api_model: str
    kind: TaskKind
    provider_id: str
    provider_base_url: str
    api_base: str
    api_key: str
    endpoint: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


def resolve_binding(
    registry: dict[str, Any],
    kind: TaskKind,
    model_id: str,
    default_api_base: str,
) -> ModelBinding:
    """Find ``model_id`` in a registry document.

    Lookup order: registry id, then provider-side model name, then the
    owner's active model for ``kind``.
    """
    types = _REGISTRY_TYPES[kind]
    models: list[dict[str, Any]] = registry.get("models") or []

    model = next((m for m in models if m.get("id") == model_id and m.get("type") in types), None)
    if model is None:
        model = next(
            (m for m in models if m.get("apiModel") == model_id and m.get("type") in types), None
        )
    if model is None:
        active = registry.get("activeModels") or {}
        active_id = next((active[t] for t in types if active.get(t)), None)
        if active_id:
            model = next((m for m in models if m.get("id") == active_id), None)
    if model is None:
        raise ConfigurationError(f"Model not found: {model_id} ({kind.value})")

    provider_id = model.get("providerId") or ""
    provider = next(
        (p for p in registry.get("providers") or [] if p.get("id") == provider_id), None
    )
    api_key = (provider or {}).get("apiKey")
    if not api_key:
        raise ConfigurationError(
            f"Provider {provider_id or '?'} of model {model.get('id')} has no API key"
        )

    base_url = (provider or {}).get("baseUrl") or ""
    return ModelBinding(
        model_id=model.get("id") or model_id,
        api_model=model.get("apiModel") or model.get("id") or model_id,
        kind=kind,
        provider_id=provider_id,
        provider_base_url=base_url,
        api_base=(base_url or default_api_base).rstrip("/"),
        api_key=api_key,
        endpoint=model.get("endpoint") or None,
        params=dict(model.get("params") or {}),
    )


class ModelCatalog:
    """Loads owners' registry documents from the database."""

    def __init__(self, session_factory: SessionFactory, settings: Settings | None = None):
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    async def load(self, owner_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ModelRegistryRecord.data).where(ModelRegistryRecord.owner_id == owner_id)
            )
            return result.scalar_one_or_none()

    async def save(self, owner_id: str, data: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(ModelRegistryRecord, owner_id)
                if record is None:
                    session.add(ModelRegistryRecord(owner_id=owner_id, data=data))
                else:
                    record.data = data
        logger.info("Model registry saved for owner %s", owner_id)

    async def resolve(self, owner_id: str, kind: TaskKind, model_id: str) -> ModelBinding:
        registry = await self.load(owner_id)
        if not registry:
            raise ConfigurationError(
                "No model registry configured; set provider API keys first"
            )
        return resolve_binding(registry, kind, model_id, self._settings.DEFAULT_API_BASE)
