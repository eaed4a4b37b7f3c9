"""ORM model package — registers all models with Base.metadata."""

from storyreel.models.project import Project
from storyreel.models.novel import NovelChapter, NovelEpisode
from storyreel.models.character import Character, CharacterVariation
from storyreel.models.scene import ScriptScene, ScriptProp, StoryParagraph
from storyreel.models.shot import Shot, ShotKeyframe, ShotVideoInterval
from storyreel.models.render_log import RenderLog
from storyreel.models.task import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    GenerationTask,
    TaskKind,
    TaskStatus,
)
from storyreel.models.model_registry import ModelRegistryRecord

__all__ = [
    "Project",
    "NovelChapter",
    "NovelEpisode",
    "Character",
    "CharacterVariation",
    "ScriptScene",
    "ScriptProp",
    "StoryParagraph",
    "Shot",
    "ShotKeyframe",
    "ShotVideoInterval",
    "RenderLog",
    "GenerationTask",
    "TaskKind",
    "TaskStatus",
    "ACTIVE_STATUSES",
    "VALID_TRANSITIONS",
    "ModelRegistryRecord",
]
