"""Initial schema — normalized project tables, model registry, generation tasks

Revision ID: 0001
Revises: None
Create Date: 2026-10-19 10:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LONGTEXT = sa.Text().with_variant(mysql.LONGTEXT(), "mysql")
TABLE_OPTS = {"mysql_charset": "utf8mb4", "mysql_collate": "utf8mb4_unicode_ci"}

# Tables partitioned by episode
EPISODE_TABLES = (
    "script_characters",
    "character_variations",
    "script_scenes",
    "script_props",
    "story_paragraphs",
    "shots",
    "shot_keyframes",
    "shot_video_intervals",
    "render_logs",
)


def _project_keys() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("owner_id", sa.String(64), primary_key=True),
        sa.Column(
            "project_id", sa.String(128),
            sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True,
        ),
    ]


def _episode_keys() -> list[sa.Column]:
    return _project_keys() + [
        sa.Column("episode_id", sa.String(128), primary_key=True, server_default=""),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
    ]


def _media_columns() -> list[sa.Column]:
    return [
        sa.Column("visual_prompt", sa.Text, nullable=True),
        sa.Column("negative_prompt", sa.Text, nullable=True),
        sa.Column("reference_image", sa.Text, nullable=True),
        sa.Column("reference_image_url", sa.Text, nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
    ]


def upgrade() -> None:
    # --- projects (aggregate root) ---
    op.create_table(
        "projects",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default="Untitled project"),
        sa.Column("stage", sa.String(50), nullable=False, server_default="script"),
        sa.Column("target_duration", sa.String(50), nullable=False, server_default="60s"),
        sa.Column("language", sa.String(50), nullable=False, server_default="English"),
        sa.Column("visual_style", sa.String(100), nullable=False, server_default="live-action"),
        sa.Column("shot_generation_model", sa.String(255), nullable=True),
        sa.Column("raw_script", LONGTEXT, nullable=True),
        sa.Column("selected_episode_id", sa.String(128), nullable=True),
        sa.Column("is_parsing_script", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("has_script_data", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("script_title", sa.String(255), nullable=True),
        sa.Column("script_genre", sa.String(255), nullable=True),
        sa.Column("script_logline", sa.Text, nullable=True),
        sa.Column("art_direction", sa.JSON, nullable=True),
        sa.Column("created_at_ms", sa.BigInteger, nullable=True),
        sa.Column("last_modified_ms", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        **TABLE_OPTS,
    )
    op.create_index("idx_project_owner", "projects", ["owner_id", "updated_at"])

    # --- project-wide children ---
    op.create_table(
        "novel_chapters",
        *_project_keys(),
        sa.Column("chapter_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reel", sa.String(255), nullable=False, server_default=""),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("content", LONGTEXT, nullable=True),
        **TABLE_OPTS,
    )
    op.create_table(
        "novel_episodes",
        *_project_keys(),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("chapter_ids", sa.JSON, nullable=True),
        sa.Column("chapter_range", sa.String(255), nullable=False, server_default=""),
        sa.Column("script", LONGTEXT, nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("episode_created_at", sa.BigInteger, nullable=True),
        sa.Column("episode_updated_at", sa.BigInteger, nullable=True),
        **TABLE_OPTS,
    )

    # --- episode-scoped children ---
    op.create_table(
        "script_characters",
        *_episode_keys(),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("gender", sa.String(50), nullable=False, server_default=""),
        sa.Column("age", sa.String(50), nullable=False, server_default=""),
        sa.Column("personality", sa.Text, nullable=False),
        sa.Column("core_features", sa.Text, nullable=True),
        *_media_columns(),
        sa.Column("turnaround_data", sa.JSON, nullable=True),
        sa.Column("turnaround_image", sa.Text, nullable=True),
        **TABLE_OPTS,
    )
    op.create_table(
        "character_variations",
        *_episode_keys(),
        sa.Column("character_id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        *_media_columns(),
        **TABLE_OPTS,
    )
    op.create_table(
        "script_scenes",
        *_episode_keys(),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("time_period", sa.String(100), nullable=False, server_default=""),
        sa.Column("atmosphere", sa.Text, nullable=False),
        *_media_columns(),
        **TABLE_OPTS,
    )
    op.create_table(
        "script_props",
        *_episode_keys(),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("category", sa.String(100), nullable=False, server_default=""),
        sa.Column("description", sa.Text, nullable=False),
        *_media_columns(),
        **TABLE_OPTS,
    )
    op.create_table(
        "story_paragraphs",
        *_episode_keys(),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("scene_ref_id", sa.String(255), nullable=False, server_default=""),
        **TABLE_OPTS,
    )
    op.create_table(
        "shots",
        *_episode_keys(),
        sa.Column("scene_id", sa.String(255), nullable=False, server_default=""),
        sa.Column("action_summary", sa.Text, nullable=False),
        sa.Column("dialogue", sa.Text, nullable=True),
        sa.Column("camera_movement", sa.String(255), nullable=False, server_default=""),
        sa.Column("shot_size", sa.String(100), nullable=True),
        sa.Column("characters_json", sa.JSON, nullable=True),
        sa.Column("character_variations_json", sa.JSON, nullable=True),
        sa.Column("props_json", sa.JSON, nullable=True),
        sa.Column("video_model", sa.String(255), nullable=True),
        sa.Column("nine_grid_panels", sa.JSON, nullable=True),
        sa.Column("nine_grid_image", sa.Text, nullable=True),
        sa.Column("nine_grid_prompt", sa.Text, nullable=True),
        sa.Column("nine_grid_status", sa.String(50), nullable=True),
        **TABLE_OPTS,
    )
    op.create_table(
        "shot_keyframes",
        *_episode_keys(),
        sa.Column("shot_id", sa.String(128), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="start"),
        sa.Column("visual_prompt", sa.Text, nullable=False),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        **TABLE_OPTS,
    )
    op.create_table(
        "shot_video_intervals",
        *_episode_keys(),
        sa.Column("shot_id", sa.String(128), primary_key=True),
        sa.Column("start_keyframe_id", sa.String(255), nullable=False, server_default=""),
        sa.Column("end_keyframe_id", sa.String(255), nullable=False, server_default=""),
        sa.Column("duration", sa.Float, nullable=False, server_default="0"),
        sa.Column("motion_strength", sa.Integer, nullable=False, server_default="5"),
        sa.Column("video_url", sa.Text, nullable=True),
        sa.Column("video_prompt", sa.Text, nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        **TABLE_OPTS,
    )
    op.create_table(
        "render_logs",
        *_episode_keys(),
        sa.Column("timestamp_ms", sa.BigInteger, nullable=True),
        sa.Column("type", sa.String(50), nullable=False, server_default=""),
        sa.Column("resource_id", sa.String(255), nullable=False, server_default=""),
        sa.Column("resource_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("status", sa.String(50), nullable=False, server_default=""),
        sa.Column("model", sa.String(255), nullable=False, server_default=""),
        sa.Column("prompt", sa.Text, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("input_tokens", sa.Integer, nullable=True),
        sa.Column("output_tokens", sa.Integer, nullable=True),
        sa.Column("total_tokens", sa.Integer, nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        **TABLE_OPTS,
    )
    for table in ("novel_chapters", "novel_episodes") + EPISODE_TABLES:
        op.create_index(f"ix_{table}_project_id", table, ["project_id"])
    for table in EPISODE_TABLES:
        op.create_index(f"ix_{table}_episode_id", table, ["episode_id"])

    # --- model_registry ---
    op.create_table(
        "model_registry",
        sa.Column("owner_id", sa.String(64), primary_key=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        **TABLE_OPTS,
    )

    # --- generation_tasks ---
    op.create_table(
        "generation_tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("project_id", sa.String(128), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, comment="video | image | text"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("params", LONGTEXT, nullable=False),
        sa.Column("provider_task_id", sa.String(500), nullable=True),
        sa.Column("provider", sa.String(100), nullable=True),
        sa.Column("model_id", sa.String(255), nullable=True),
        sa.Column("result", LONGTEXT, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_shot_id", sa.String(255), nullable=True),
        sa.Column("target_entity_id", sa.String(255), nullable=True),
        sa.Column("target_episode_id", sa.String(128), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        **TABLE_OPTS,
    )
    op.create_index("idx_task_owner_status", "generation_tasks", ["owner_id", "status"])
    op.create_index("idx_task_project", "generation_tasks", ["project_id", "owner_id"])
    op.create_index("idx_task_status", "generation_tasks", ["status"])


def downgrade() -> None:
    op.drop_table("generation_tasks")
    op.drop_table("model_registry")
    for table in reversed(EPISODE_TABLES):
        op.drop_table(table)
    op.drop_table("novel_episodes")
    op.drop_table("novel_chapters")
    op.drop_table("projects")
