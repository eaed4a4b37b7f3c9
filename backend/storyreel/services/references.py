from __future__ import annotations
"""Reference image preparation for image tasks.

Clients pass reference images as data URIs, remote URLs or media route URLs
(``/api/projects/{pid}/media/{type}/{id}``). Media route URLs are turned into
data URIs here, first from the stored file, then from the entity's stored
column. References that can't be resolved are skipped rather than failing
the task.
"""

import logging

from storyreel.services.project_store import ProjectStore
from storyreel.services.storage import (
    MediaStorage,
    is_data_uri,
    is_file_reference,
    is_remote_url,
    parse_media_api_url,
    unwrap_legacy_value,
)

logger = logging.getLogger(__name__)


class ReferenceResolver:
    def __init__(self, storage: MediaStorage, project_store: ProjectStore):
        self.storage = storage
        self.project_store = project_store

    async def resolve(self, owner_id: str, images: list[str]) -> list[str]:
        resolved: list[str] = []
        for image in images:
            if not image:
                continue
            if is_data_uri(image) or is_remote_url(image):
                resolved.append(image)
                continue

            parsed = parse_media_api_url(image)
            if parsed is None:
                resolved.append(image)
                continue

            value = await self._from_media_url(owner_id, *parsed)
            if value:
                resolved.append(value)
            else:
                logger.warning("Reference image could not be resolved, skipped: %s", image)
        return resolved

    async def _from_media_url(
        self, owner_id: str, project_id: str, entity_type: str, entity_id: str
    ) -> str | None:
        reference = await self.storage.locate(project_id, entity_type, entity_id)
        if reference:
            data_uri = await self.storage.read_data_uri(reference)
            if data_uri:
                return data_uri

        value = await self.project_store.media_reference(
            owner_id, project_id, entity_type, entity_id
        )
        if not value:
            return None
        if value.startswith("{"):
            inline, url = unwrap_legacy_value(value)
            value = inline or url
            if not value:
                return None
        if is_file_reference(value):
            return await self.storage.read_data_uri(value)
        if is_data_uri(value) or is_remote_url(value):
            return value
        return None
