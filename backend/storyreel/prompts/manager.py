from __future__ import annotations
"""Prompt templates for image generation with reference images."""

import logging
from pathlib import Path
from typing import ClassVar

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).parent / "templates"


class PromptManager:
    """Load and cache prompt templates from the filesystem.

    Templates live in ``prompts/templates/{style}/{template_name}.txt``;
    a style missing a template falls back to ``default``.
    """

    _cache: ClassVar[dict[str, str]] = {}

    @classmethod
    def get_prompt(cls, template_name: str, style: str = "default") -> str:
        cache_key = f"{style}/{template_name}"
        if cache_key in cls._cache:
            return cls._cache[cache_key]

        path = _TEMPLATES_DIR / style / f"{template_name}.txt"
        if not path.exists() and style != "default":
            path = _TEMPLATES_DIR / "default" / f"{template_name}.txt"

        if not path.exists():
            logger.warning("Prompt template not found: %s/%s.txt", style, template_name)
            return ""

        text = path.read_text(encoding="utf-8").strip()
        cls._cache[cache_key] = text
        return text

    @classmethod
    def reload(cls):
        """Clear cache to force reload on next access."""
        cls._cache.clear()
        logger.info("Prompt template cache cleared.")


def wrap_prompt_with_reference_guide(
    prompt: str,
    reference_count: int,
    is_variation: bool = False,
    has_turnaround: bool = False,
) -> str:
    """Tell the image model what each reference image is for.

    Reference order: scene first, then characters (base look, variation or
    turnaround sheet), then props. Prompts without references pass through.
    """
    if reference_count <= 0:
        return prompt

    if is_variation:
        template = PromptManager.get_prompt("outfit_variation")
        return template.format(prompt=prompt) if template else prompt

    template = PromptManager.get_prompt("character_consistency")
    if not template:
        return prompt

    turnaround_note = ""
    turnaround_guide = ""
    if has_turnaround:
        turnaround_note = (
            "\n- Some character images are 3x3 TURNAROUND SHEETS showing the character"
            " from 9 different angles (front, side, back, close-up, etc.)."
        )
        turnaround_guide = PromptManager.get_prompt("turnaround_guide") + "\n"

    return template.format(
        prompt=prompt,
        turnaround_note=turnaround_note,
        turnaround_guide=turnaround_guide,
    )
