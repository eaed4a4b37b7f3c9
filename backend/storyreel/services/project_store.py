from __future__ import annotations
"""Normalized project storage — decompose a snapshot into tables, assemble it back.

A save is a full replace: the root row is upserted and every child row in
scope is deleted and re-inserted from the snapshot. Media columns are the
exception to "what the snapshot says wins": when the snapshot omits a media
value, the value stored before the save is carried over (see
:class:`MediaBackup`).

Script-level tables are partitioned by episode, and a save only replaces the
partition of the snapshot's selected episode. Chapters and episodes are
project-wide.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.config import Settings, get_settings
from storyreel.database import Base, SessionFactory
from storyreel.errors import ProjectStoreError, StorageLockContention, is_lock_contention
from storyreel.models import (
    Character,
    CharacterVariation,
    NovelChapter,
    NovelEpisode,
    Project,
    RenderLog,
    ScriptProp,
    ScriptScene,
    Shot,
    ShotKeyframe,
    ShotVideoInterval,
    StoryParagraph,
)
from storyreel.schemas.project import ProjectSnapshot, ProjectSummary
from storyreel.services.storage import (
    MediaStorage,
    is_data_uri,
    is_file_reference,
    is_internal_media_url,
    is_remote_url,
    media_api_url,
    parse_media_api_url,
    unwrap_legacy_value,
)

logger = logging.getLogger(__name__)

PROJECT_WIDE_MODELS: tuple[type[Base], ...] = (NovelChapter, NovelEpisode)
EPISODE_MODELS: tuple[type[Base], ...] = (
    Character,
    CharacterVariation,
    ScriptScene,
    ScriptProp,
    StoryParagraph,
    Shot,
    ShotKeyframe,
    ShotVideoInterval,
    RenderLog,
)

# entity_type -> (model, media column)
MEDIA_COLUMNS: dict[str, tuple[type[Base], str]] = {
    "character": (Character, "reference_image"),
    "turnaround": (Character, "turnaround_image"),
    "variation": (CharacterVariation, "reference_image"),
    "scene": (ScriptScene, "reference_image"),
    "prop": (ScriptProp, "reference_image"),
    "keyframe": (ShotKeyframe, "image_url"),
    "video": (ShotVideoInterval, "video_url"),
    "ninegrid": (Shot, "nine_grid_image"),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Backup of stored media values
# ---------------------------------------------------------------------------

@dataclass
class MediaBackup:
    """Media values stored before a save, keyed by (entity_type, key).

    Variations are keyed ``"{character_id}:{id}"`` and keyframes
    ``"{shot_id}:{id}"``; everything else by entity id.
    """

    values: dict[tuple[str, str], str] = field(default_factory=dict)

    def get(self, entity_type: str, key: str) -> str | None:
        return self.values.get((entity_type, key))

    def put(self, entity_type: str, key: str, value: str | None) -> None:
        if value:
            self.values[(entity_type, key)] = value


def backup_key(row: Any, entity_type: str) -> str:
    if entity_type == "variation":
        return f"{row.character_id}:{row.id}"
    if entity_type == "keyframe":
        return f"{row.shot_id}:{row.id}"
    return row.id


# ---------------------------------------------------------------------------
# Snapshot apply
# ---------------------------------------------------------------------------

@dataclass
class SnapshotApply:
    """A fully resolved save: the root row plus every child row to insert.

    Building one does all the file I/O; :meth:`apply` is pure SQL and can be
    retried.
    """

    owner_id: str
    project_id: str
    episode_scope: str
    root: dict[str, Any]
    rows: dict[type[Base], list[dict[str, Any]]]

    def rows_for(self, model: type[Base]) -> list[dict[str, Any]]:
        return self.rows.get(model, [])

    async def apply(self, session: AsyncSession) -> None:
        """Write the snapshot inside the caller's transaction."""
        project = await session.get(Project, self.project_id)
        if project is None:
            session.add(Project(id=self.project_id, owner_id=self.owner_id, **self.root))
        elif project.owner_id != self.owner_id:
            raise ProjectStoreError(f"Project {self.project_id} belongs to another owner")
        else:
            for key, value in self.root.items():
                setattr(project, key, value)
        await session.flush()

        for model in PROJECT_WIDE_MODELS:
            await session.execute(
                delete(model).where(
                    model.project_id == self.project_id, model.owner_id == self.owner_id
                )
            )
        for model in EPISODE_MODELS:
            await session.execute(
                delete(model).where(
                    model.project_id == self.project_id,
                    model.owner_id == self.owner_id,
                    model.episode_id == self.episode_scope,
                )
            )

        for model in PROJECT_WIDE_MODELS + EPISODE_MODELS:
            rows = self.rows_for(model)
            if rows:
                await session.execute(insert(model), rows)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ProjectStore:
    """Project aggregate persistence over the normalized tables."""

    def __init__(
        self,
        session_factory: SessionFactory,
        storage: MediaStorage,
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self.storage = storage
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def fetch_backup(self, owner_id: str, project_id: str, episode_scope: str) -> MediaBackup:
        """Read the media columns of the partition a save will replace.

        Runs outside the save transaction so no locks are held while reading.
        """
        backup = MediaBackup()
        async with self._session_factory() as session:
            for entity_type, (model, column) in MEDIA_COLUMNS.items():
                key_columns = [model.id]
                if entity_type == "variation":
                    key_columns.append(model.character_id)
                elif entity_type == "keyframe":
                    key_columns.append(model.shot_id)
                result = await session.execute(
                    select(*key_columns, getattr(model, column).label("value")).where(
                        model.project_id == project_id,
                        model.owner_id == owner_id,
                        model.episode_id == episode_scope,
                    )
                )
                for row in result:
                    backup.put(entity_type, backup_key(row, entity_type), row.value)
        return backup

    async def resolve_media(
        self,
        project_id: str,
        entity_type: str,
        entity_id: str,
        incoming: str | None,
        cached: str | None,
    ) -> str | None:
        """Decide the stored value of one media column.

        - fresh inline payload: written to storage, its reference stored
        - remote URL or storage reference: stored verbatim
        - nothing (or this entity's own display URL): the cached value
        """
        if incoming:
            if is_data_uri(incoming):
                reference = await self.storage.save_data_uri(
                    project_id, entity_type, entity_id, incoming
                )
                if reference:
                    return reference
            elif is_remote_url(incoming) or is_file_reference(incoming):
                return incoming
            elif incoming.startswith("{"):
                resolved = await self.storage.resolve_media_value(
                    project_id, entity_type, entity_id, incoming
                )
                if resolved:
                    return resolved
            elif is_internal_media_url(incoming):
                parsed = parse_media_api_url(incoming)
                if parsed is not None and parsed != (project_id, entity_type, entity_id):
                    return incoming

        if cached:
            return await self.storage.resolve_media_value(
                project_id, entity_type, entity_id, cached
            ) or cached
        return None

    async def plan(
        self, owner_id: str, snapshot: ProjectSnapshot, backup: MediaBackup
    ) -> SnapshotApply:
        """Turn a snapshot into rows, persisting any inline media it carries."""
        pid = snapshot.id
        scope = snapshot.episode_scope
        scoped = {"project_id": pid, "owner_id": owner_id, "episode_id": scope}
        sd = snapshot.script_data
        rows: dict[type[Base], list[dict[str, Any]]] = {
            model: [] for model in PROJECT_WIDE_MODELS + EPISODE_MODELS
        }

        root = {
            "title": snapshot.title or "Untitled project",
            "stage": snapshot.stage or "script",
            "target_duration": snapshot.target_duration or "60s",
            "language": snapshot.language or "English",
            "visual_style": snapshot.visual_style or "live-action",
            "shot_generation_model": snapshot.shot_generation_model or None,
            "raw_script": snapshot.raw_script or "",
            "selected_episode_id": snapshot.selected_episode_id or None,
            "is_parsing_script": snapshot.is_parsing_script,
            "has_script_data": sd is not None,
            "script_title": (sd.title or None) if sd else None,
            "script_genre": (sd.genre or None) if sd else None,
            "script_logline": (sd.logline or None) if sd else None,
            "art_direction": sd.art_direction if sd else None,
            "created_at_ms": snapshot.created_at or _now_ms(),
            "last_modified_ms": snapshot.last_modified or _now_ms(),
        }

        for ch in snapshot.novel_chapters:
            rows[NovelChapter].append({
                "id": ch.id, "project_id": pid, "owner_id": owner_id,
                "chapter_index": ch.index, "reel": ch.reel, "title": ch.title,
                "content": ch.content,
            })
        for ep in snapshot.novel_episodes:
            rows[NovelEpisode].append({
                "id": ep.id, "project_id": pid, "owner_id": owner_id,
                "name": ep.name, "chapter_ids": ep.chapter_ids,
                "chapter_range": ep.chapter_range, "script": ep.script,
                "status": ep.status or "pending",
                "episode_created_at": ep.created_at, "episode_updated_at": ep.updated_at,
            })

        if sd is not None:
            for i, ch in enumerate(sd.characters):
                turnaround = ch.turnaround
                turnaround_meta = None
                if turnaround is not None:
                    turnaround_meta = {
                        "panels": turnaround.panels,
                        "status": turnaround.status,
                        "prompt": turnaround.prompt,
                    }
                rows[Character].append({
                    **scoped, "id": ch.id, "sort_order": i,
                    "name": ch.name, "gender": ch.gender, "age": ch.age,
                    "personality": ch.personality,
                    "visual_prompt": ch.visual_prompt or None,
                    "negative_prompt": ch.negative_prompt or None,
                    "core_features": ch.core_features or None,
                    "reference_image": await self.resolve_media(
                        pid, "character", ch.id, ch.reference_image,
                        backup.get("character", ch.id),
                    ),
                    "reference_image_url": ch.reference_image_url or None,
                    "turnaround_data": turnaround_meta,
                    "turnaround_image": await self.resolve_media(
                        pid, "turnaround", ch.id,
                        turnaround.image_url if turnaround else None,
                        backup.get("turnaround", ch.id),
                    ),
                    "status": ch.status or None,
                })
                for j, v in enumerate(ch.variations):
                    rows[CharacterVariation].append({
                        **scoped, "id": v.id, "character_id": ch.id, "sort_order": j,
                        "name": v.name,
                        "visual_prompt": v.visual_prompt or None,
                        "negative_prompt": v.negative_prompt or None,
                        "reference_image": await self.resolve_media(
                            pid, "variation", v.id, v.reference_image,
                            backup.get("variation", f"{ch.id}:{v.id}"),
                        ),
                        "reference_image_url": v.reference_image_url or None,
                        "status": v.status or None,
                    })

            for i, s in enumerate(sd.scenes):
                rows[ScriptScene].append({
                    **scoped, "id": s.id, "sort_order": i,
                    "location": s.location, "time_period": s.time, "atmosphere": s.atmosphere,
                    "visual_prompt": s.visual_prompt or None,
                    "negative_prompt": s.negative_prompt or None,
                    "reference_image": await self.resolve_media(
                        pid, "scene", s.id, s.reference_image, backup.get("scene", s.id)
                    ),
                    "reference_image_url": s.reference_image_url or None,
                    "status": s.status or None,
                })

            for i, p in enumerate(sd.props):
                rows[ScriptProp].append({
                    **scoped, "id": p.id, "sort_order": i,
                    "name": p.name, "category": p.category, "description": p.description,
                    "visual_prompt": p.visual_prompt or None,
                    "negative_prompt": p.negative_prompt or None,
                    "reference_image": await self.resolve_media(
                        pid, "prop", p.id, p.reference_image, backup.get("prop", p.id)
                    ),
                    "reference_image_url": p.reference_image_url or None,
                    "status": p.status or None,
                })

            for i, para in enumerate(sd.story_paragraphs):
                rows[StoryParagraph].append({
                    **scoped, "id": para.id, "sort_order": i,
                    "text": para.text, "scene_ref_id": para.scene_ref_id,
                })

        for i, shot in enumerate(snapshot.shots):
            ng = shot.nine_grid
            rows[Shot].append({
                **scoped, "id": shot.id, "sort_order": i,
                "scene_id": shot.scene_id, "action_summary": shot.action_summary,
                "dialogue": shot.dialogue or None,
                "camera_movement": shot.camera_movement,
                "shot_size": shot.shot_size or None,
                "characters_json": shot.characters,
                "character_variations_json": shot.character_variations,
                "props_json": shot.props,
                "video_model": shot.video_model or None,
                "nine_grid_panels": ng.panels if ng else None,
                "nine_grid_image": await self.resolve_media(
                    pid, "ninegrid", shot.id, ng.image_url if ng else None,
                    backup.get("ninegrid", shot.id),
                ),
                "nine_grid_prompt": ng.prompt if ng else None,
                "nine_grid_status": ng.status if ng else None,
            })
            for j, kf in enumerate(shot.keyframes):
                rows[ShotKeyframe].append({
                    **scoped, "id": kf.id, "shot_id": shot.id, "sort_order": j,
                    "type": kf.type or "start", "visual_prompt": kf.visual_prompt,
                    "image_url": await self.resolve_media(
                        pid, "keyframe", kf.id, kf.image_url,
                        backup.get("keyframe", f"{shot.id}:{kf.id}"),
                    ),
                    "status": kf.status or "pending",
                })
            iv = shot.interval
            if iv is not None:
                rows[ShotVideoInterval].append({
                    **scoped, "id": iv.id, "shot_id": shot.id, "sort_order": 0,
                    "start_keyframe_id": iv.start_keyframe_id,
                    "end_keyframe_id": iv.end_keyframe_id,
                    "duration": iv.duration or 0,
                    "motion_strength": iv.motion_strength or 5,
                    "video_url": await self.resolve_media(
                        pid, "video", iv.id, iv.video_url, backup.get("video", iv.id)
                    ),
                    "video_prompt": iv.video_prompt or None,
                    "status": iv.status or "pending",
                })

        for i, log in enumerate(snapshot.render_logs):
            rows[RenderLog].append({
                **scoped, "id": log.id, "sort_order": i,
                "timestamp_ms": log.timestamp, "type": log.type,
                "resource_id": log.resource_id, "resource_name": log.resource_name,
                "status": log.status, "model": log.model,
                "prompt": log.prompt, "error": log.error,
                "input_tokens": log.input_tokens, "output_tokens": log.output_tokens,
                "total_tokens": log.total_tokens, "duration_ms": log.duration,
            })

        return SnapshotApply(
            owner_id=owner_id,
            project_id=pid,
            episode_scope=scope,
            root=root,
            rows=rows,
        )

    async def save(self, owner_id: str, snapshot: ProjectSnapshot) -> None:
        """Full-replace save with retry on lock contention.

        Callers serialize saves of one project through :class:`ProjectMutex`.
        Only the transactional apply is retried; the backup read and the media
        writes happen once.
        """
        backup = await self.fetch_backup(owner_id, snapshot.id, snapshot.episode_scope)
        plan = await self.plan(owner_id, snapshot, backup)
        max_retries = self.settings.SAVE_MAX_RETRIES

        for attempt in range(max_retries + 1):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        await plan.apply(session)
            except OperationalError as e:
                if not is_lock_contention(e):
                    raise
                if attempt >= max_retries:
                    raise StorageLockContention(
                        f"Saving project {snapshot.id} hit lock contention "
                        f"{attempt + 1} times: {e.orig or e}"
                    ) from e
                delay = self.settings.SAVE_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Lock contention saving project %s (attempt %d/%d), retrying in %.2fs",
                    snapshot.id, attempt + 1, max_retries + 1, delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.info(
                    "Project %s saved (episode scope %r, %d child rows)",
                    snapshot.id, plan.episode_scope,
                    sum(len(r) for r in plan.rows.values()),
                )
                return

    # ------------------------------------------------------------------
    # Targeted media updates (task results)
    # ------------------------------------------------------------------

    async def update_entity(
        self,
        model: type[Base],
        owner_id: str,
        project_id: str,
        episode_scope: str,
        entity_id: str,
        values: dict[str, Any],
        shot_id: str | None = None,
    ) -> int:
        """Patch columns of exactly one entity row; returns the matched row count."""
        stmt = update(model).where(
            model.id == entity_id,
            model.project_id == project_id,
            model.owner_id == owner_id,
            model.episode_id == episode_scope,
        )
        if shot_id is not None and hasattr(model, "shot_id"):
            stmt = stmt.where(model.shot_id == shot_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt.values(**values))
            await session.commit()
        return result.rowcount

    async def media_reference(
        self, owner_id: str, project_id: str, entity_type: str, entity_id: str
    ) -> str | None:
        """The raw stored media value of an entity, from any episode."""
        spec = MEDIA_COLUMNS.get(entity_type)
        if spec is None:
            return None
        model, column = spec
        async with self._session_factory() as session:
            result = await session.execute(
                select(getattr(model, column)).where(
                    model.id == entity_id,
                    model.project_id == project_id,
                    model.owner_id == owner_id,
                )
            )
            for value in result.scalars():
                if value:
                    return value
        return None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(
        self, owner_id: str, project_id: str, include_full_content: bool = False
    ) -> dict[str, Any] | None:
        """Assemble the project aggregate in its camelCase wire shape.

        By default only the selected episode's rows are loaded (the unscoped
        rows when no episode is selected) and chapter / episode bodies are
        replaced by their lengths.
        """
        async with self._session_factory() as session:
            meta = await session.get(Project, project_id)
            if meta is None or meta.owner_id != owner_id:
                return None

            def scoped(model: type[Base]):
                stmt = select(model).where(
                    model.project_id == project_id, model.owner_id == owner_id
                )
                # Same partition a save of this project replaces
                if not include_full_content:
                    stmt = stmt.where(model.episode_id == (meta.selected_episode_id or ""))
                return stmt

            if include_full_content:
                chapters = [
                    {"id": r.id, "index": r.chapter_index, "reel": r.reel or "",
                     "title": r.title or "", "content": r.content or ""}
                    for r in (await session.scalars(
                        select(NovelChapter)
                        .where(NovelChapter.project_id == project_id,
                               NovelChapter.owner_id == owner_id)
                        .order_by(NovelChapter.chapter_index)
                    ))
                ]
                episodes = [
                    {**self._episode_meta(r), "script": r.script or ""}
                    for r in (await session.scalars(
                        select(NovelEpisode).where(NovelEpisode.project_id == project_id,
                                                   NovelEpisode.owner_id == owner_id)
                    ))
                ]
            else:
                chapter_rows = await session.execute(
                    select(
                        NovelChapter.id, NovelChapter.chapter_index, NovelChapter.reel,
                        NovelChapter.title,
                        func.char_length(NovelChapter.content).label("word_count"),
                    )
                    .where(NovelChapter.project_id == project_id,
                           NovelChapter.owner_id == owner_id)
                    .order_by(NovelChapter.chapter_index)
                )
                chapters = [
                    {"id": r.id, "index": r.chapter_index, "reel": r.reel or "",
                     "title": r.title or "", "content": "", "wordCount": r.word_count or 0}
                    for r in chapter_rows
                ]
                episode_rows = await session.execute(
                    select(
                        NovelEpisode.id, NovelEpisode.name, NovelEpisode.chapter_ids,
                        NovelEpisode.chapter_range, NovelEpisode.status,
                        NovelEpisode.episode_created_at, NovelEpisode.episode_updated_at,
                        func.char_length(NovelEpisode.script).label("script_length"),
                    ).where(NovelEpisode.project_id == project_id,
                            NovelEpisode.owner_id == owner_id)
                )
                episodes = [
                    {**self._episode_meta(r), "script": "", "scriptLength": r.script_length or 0}
                    for r in episode_rows
                ]

            characters = list(await session.scalars(scoped(Character).order_by(Character.sort_order)))
            variations = list(await session.scalars(
                scoped(CharacterVariation).order_by(CharacterVariation.sort_order)
            ))
            scenes = list(await session.scalars(scoped(ScriptScene).order_by(ScriptScene.sort_order)))
            props = list(await session.scalars(scoped(ScriptProp).order_by(ScriptProp.sort_order)))
            paragraphs = list(await session.scalars(
                scoped(StoryParagraph).order_by(StoryParagraph.sort_order)
            ))
            shots = list(await session.scalars(scoped(Shot).order_by(Shot.sort_order)))
            keyframes = list(await session.scalars(
                scoped(ShotKeyframe).order_by(ShotKeyframe.sort_order)
            ))
            intervals = list(await session.scalars(scoped(ShotVideoInterval)))
            logs = list(await session.scalars(scoped(RenderLog).order_by(RenderLog.timestamp_ms)))

        pid = project_id

        variations_by_char: dict[str, list[dict[str, Any]]] = {}
        for v in variations:
            variations_by_char.setdefault(v.character_id, []).append({
                "id": v.id,
                "name": v.name or "",
                "visualPrompt": v.visual_prompt or "",
                "negativePrompt": v.negative_prompt,
                "referenceImage": display_media(pid, "variation", v.id, v.reference_image),
                "referenceImageUrl": v.reference_image_url,
                "status": v.status,
            })

        character_data = []
        for c in characters:
            turnaround = None
            if c.turnaround_data:
                turnaround = {
                    **c.turnaround_data,
                    "imageUrl": display_media(pid, "turnaround", c.id, c.turnaround_image),
                }
            character_data.append({
                "id": c.id,
                "name": c.name or "",
                "gender": c.gender or "",
                "age": c.age or "",
                "personality": c.personality or "",
                "visualPrompt": c.visual_prompt,
                "negativePrompt": c.negative_prompt,
                "coreFeatures": c.core_features,
                "referenceImage": display_media(pid, "character", c.id, c.reference_image),
                "referenceImageUrl": c.reference_image_url,
                "turnaround": turnaround,
                "variations": variations_by_char.get(c.id, []),
                "status": c.status,
            })

        keyframes_by_shot: dict[str, list[dict[str, Any]]] = {}
        for kf in keyframes:
            keyframes_by_shot.setdefault(kf.shot_id, []).append({
                "id": kf.id,
                "type": kf.type or "start",
                "visualPrompt": kf.visual_prompt or "",
                "imageUrl": display_media(pid, "keyframe", kf.id, kf.image_url),
                "status": kf.status or "pending",
            })

        intervals_by_shot = {
            iv.shot_id: {
                "id": iv.id,
                "startKeyframeId": iv.start_keyframe_id or "",
                "endKeyframeId": iv.end_keyframe_id or "",
                "duration": iv.duration or 0,
                "motionStrength": iv.motion_strength or 5,
                "videoUrl": display_media(pid, "video", iv.id, iv.video_url),
                "videoPrompt": iv.video_prompt,
                "status": iv.status or "pending",
            }
            for iv in intervals
        }

        shot_data = []
        for s in shots:
            nine_grid = None
            if s.nine_grid_panels:
                nine_grid = {
                    "panels": s.nine_grid_panels,
                    "imageUrl": display_media(pid, "ninegrid", s.id, s.nine_grid_image),
                    "prompt": s.nine_grid_prompt,
                    "status": s.nine_grid_status or "pending",
                }
            shot_data.append({
                "id": s.id,
                "sceneId": s.scene_id or "",
                "actionSummary": s.action_summary or "",
                "dialogue": s.dialogue,
                "cameraMovement": s.camera_movement or "",
                "shotSize": s.shot_size,
                "characters": s.characters_json or [],
                "characterVariations": s.character_variations_json or {},
                "props": s.props_json or [],
                "keyframes": keyframes_by_shot.get(s.id, []),
                "interval": intervals_by_shot.get(s.id),
                "videoModel": s.video_model,
                "nineGrid": nine_grid,
            })

        script_data = None
        if meta.has_script_data:
            script_data = {
                "title": meta.script_title or "",
                "genre": meta.script_genre or "",
                "logline": meta.script_logline or "",
                "targetDuration": meta.target_duration,
                "language": meta.language,
                "visualStyle": meta.visual_style,
                "shotGenerationModel": meta.shot_generation_model,
                "artDirection": meta.art_direction,
                "characters": character_data,
                "scenes": [
                    {
                        "id": s.id,
                        "location": s.location or "",
                        "time": s.time_period or "",
                        "atmosphere": s.atmosphere or "",
                        "visualPrompt": s.visual_prompt,
                        "negativePrompt": s.negative_prompt,
                        "referenceImage": display_media(pid, "scene", s.id, s.reference_image),
                        "referenceImageUrl": s.reference_image_url,
                        "status": s.status,
                    }
                    for s in scenes
                ],
                "props": [
                    {
                        "id": p.id,
                        "name": p.name or "",
                        "category": p.category or "",
                        "description": p.description or "",
                        "visualPrompt": p.visual_prompt,
                        "negativePrompt": p.negative_prompt,
                        "referenceImage": display_media(pid, "prop", p.id, p.reference_image),
                        "referenceImageUrl": p.reference_image_url,
                        "status": p.status,
                    }
                    for p in props
                ],
                "storyParagraphs": [
                    {"id": p.id, "text": p.text or "", "sceneRefId": p.scene_ref_id or ""}
                    for p in paragraphs
                ],
            }

        return {
            **self._summary(meta).model_dump(by_alias=True),
            "novelChapters": chapters,
            "novelEpisodes": episodes,
            "rawScript": meta.raw_script or "",
            "scriptData": script_data,
            "shots": shot_data,
            "renderLogs": [
                {
                    "id": r.id,
                    "timestamp": r.timestamp_ms or 0,
                    "type": r.type or "",
                    "resourceId": r.resource_id or "",
                    "resourceName": r.resource_name or "",
                    "status": r.status or "",
                    "model": r.model or "",
                    "prompt": r.prompt,
                    "error": r.error,
                    "inputTokens": r.input_tokens,
                    "outputTokens": r.output_tokens,
                    "totalTokens": r.total_tokens,
                    "duration": r.duration_ms,
                }
                for r in logs
            ],
        }

    async def export(self, owner_id: str, project_id: str) -> dict[str, Any] | None:
        """Every episode and full chapter / script bodies."""
        return await self.load(owner_id, project_id, include_full_content=True)

    @staticmethod
    def _episode_meta(row: Any) -> dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name or "",
            "chapterIds": row.chapter_ids or [],
            "chapterRange": row.chapter_range or "",
            "status": row.status or "pending",
            "createdAt": row.episode_created_at or 0,
            "updatedAt": row.episode_updated_at or 0,
        }

    @staticmethod
    def _summary(meta: Project) -> ProjectSummary:
        created = meta.created_at_ms
        if created is None and meta.created_at is not None:
            created = int(meta.created_at.timestamp() * 1000)
        modified = meta.last_modified_ms
        if modified is None and meta.updated_at is not None:
            modified = int(meta.updated_at.timestamp() * 1000)
        return ProjectSummary(
            id=meta.id,
            title=meta.title or "Untitled project",
            created_at=created,
            last_modified=modified,
            stage=meta.stage or "script",
            target_duration=meta.target_duration or "60s",
            language=meta.language or "English",
            visual_style=meta.visual_style or "live-action",
            shot_generation_model=meta.shot_generation_model,
            selected_episode_id=meta.selected_episode_id,
            is_parsing_script=bool(meta.is_parsing_script),
        )

    # ------------------------------------------------------------------
    # List / delete
    # ------------------------------------------------------------------

    async def list_projects(self, owner_id: str) -> list[ProjectSummary]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(Project)
                .where(Project.owner_id == owner_id)
                .order_by(Project.updated_at.desc())
            )
            return [self._summary(p) for p in result]

    async def exists(self, owner_id: str, project_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project.id).where(Project.id == project_id, Project.owner_id == owner_id)
            )
            return result.scalar_one_or_none() is not None

    async def delete(self, owner_id: str, project_id: str) -> bool:
        """Delete the project, every child row and its media directory."""
        async with self._session_factory() as session:
            async with session.begin():
                project = await session.get(Project, project_id)
                if project is None or project.owner_id != owner_id:
                    return False
                for model in PROJECT_WIDE_MODELS + EPISODE_MODELS:
                    await session.execute(
                        delete(model).where(
                            model.project_id == project_id, model.owner_id == owner_id
                        )
                    )
                await session.delete(project)

        await self.storage.delete_project_files(project_id)
        logger.info("Project %s deleted", project_id)
        return True


def display_media(
    project_id: str, entity_type: str, entity_id: str, value: str | None
) -> str | None:
    """Map a stored media value to what clients should render.

    Storage references and inline payloads become the media route URL;
    remote URLs pass through; legacy ``{"base64","url"}`` values yield
    their URL when they have one.
    """
    if not value:
        return None
    fallback = media_api_url(project_id, entity_type, entity_id)
    if is_file_reference(value):
        return fallback
    if value.startswith("{"):
        _, url = unwrap_legacy_value(value)
        return url or fallback
    if is_remote_url(value) or is_internal_media_url(value):
        return value
    return fallback
