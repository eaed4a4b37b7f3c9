"""Lands a finished task's output in durable storage and on its target entity.

The target descriptor (type, shot id, entity id) plus the episode recorded on
the task row identify exactly one row and column. Storage naming is
deterministic per entity, so writing the same result twice leaves one file
and the same reference.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from storyreel.database import Base
from storyreel.models import (
    Character,
    CharacterVariation,
    GenerationTask,
    ScriptProp,
    ScriptScene,
    Shot,
    ShotKeyframe,
    ShotVideoInterval,
)
from storyreel.services.project_store import ProjectStore
from storyreel.services.providers.base import GenerationResult
from storyreel.services.storage import MediaStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetSpec:
    entity_type: str  # storage entity type
    model: type[Base]
    column: str
    url_column: Optional[str] = None
    status_column: Optional[str] = "status"
    needs_shot: bool = False


TARGETS: dict[str, TargetSpec] = {
    "keyframe": TargetSpec("keyframe", ShotKeyframe, "image_url", needs_shot=True),
    "video_interval": TargetSpec("video", ShotVideoInterval, "video_url", needs_shot=True),
    "character_image": TargetSpec("character", Character, "reference_image", "reference_image_url"),
    "variation_image": TargetSpec(
        "variation", CharacterVariation, "reference_image", "reference_image_url"
    ),
    "scene_image": TargetSpec("scene", ScriptScene, "reference_image", "reference_image_url"),
    "prop_image": TargetSpec("prop", ScriptProp, "reference_image", "reference_image_url"),
    "character_turnaround": TargetSpec(
        "turnaround", Character, "turnaround_image", status_column=None
    ),
    "nine_grid": TargetSpec("ninegrid", Shot, "nine_grid_image", status_column="nine_grid_status"),
}


def target_of(task: GenerationTask) -> dict[str, Any] | None:
    if not task.target_type:
        return None
    return {
        "type": task.target_type,
        "shotId": task.target_shot_id,
        "entityId": task.target_entity_id,
    }


class ResultWriter:
    """Persists results and patches target entities.

    Callers hold the project's :class:`ProjectMutex` while writing.
    """

    def __init__(self, project_store: ProjectStore, storage: MediaStorage):
        self.project_store = project_store
        self.storage = storage

    async def write(self, task: GenerationTask, result: GenerationResult) -> str:
        """Persist ``result`` for ``task``; returns the JSON stored as the task result."""
        if not result.is_media:
            return json.dumps({"text": result.text or ""}, ensure_ascii=False)

        mapping = TARGETS.get(task.target_type or "")
        if task.target_type and mapping is None:
            logger.warning("Task %s: unknown target type %r, result not applied",
                           task.id, task.target_type)
        if mapping is not None and not self._target_complete(task, mapping):
            logger.warning("Task %s: incomplete %s target, result not applied",
                           task.id, task.target_type)
            mapping = None

        if mapping is not None:
            entity_type, entity_id = mapping.entity_type, task.target_entity_id
        else:
            entity_type, entity_id = "task", task.id

        reference = result.url
        if result.data is not None:
            reference = await self.storage.save(
                task.project_id, entity_type, entity_id, result.data,
                result.mime or "application/octet-stream",
            )

        if mapping is not None:
            await self._patch(task, mapping, reference, result.url)

        return json.dumps({
            "reference": reference,
            "mime": result.mime,
            "url": result.url,
            "target": target_of(task),
        })

    @staticmethod
    def _target_complete(task: GenerationTask, mapping: TargetSpec) -> bool:
        if not task.target_entity_id:
            return False
        return not mapping.needs_shot or bool(task.target_shot_id)

    async def _patch(
        self, task: GenerationTask, mapping: TargetSpec, reference: str | None, url: str | None
    ) -> None:
        values: dict[str, Any] = {mapping.column: reference}
        if mapping.url_column is not None:
            values[mapping.url_column] = url
        if mapping.status_column is not None:
            values[mapping.status_column] = "completed"

        matched = await self.project_store.update_entity(
            mapping.model,
            owner_id=task.owner_id,
            project_id=task.project_id,
            episode_scope=task.target_episode_id or "",
            entity_id=task.target_entity_id,
            values=values,
            shot_id=task.target_shot_id if mapping.needs_shot else None,
        )
        if matched:
            logger.info("Task %s: %s %s → %s", task.id, task.target_type,
                        task.target_entity_id, reference)
        else:
            logger.warning("Task %s: target %s %s not found, entity not patched",
                           task.id, task.target_type, task.target_entity_id)
