"""
Renders project state into the markdown-ish context block sent with prompts.
"""

import logging
from typing import List

from spica_writer.project.models import Character, DraftTab, ProjectDocument, Scene, Star

logger = logging.getLogger(__name__)

RECENT_TAB_LIMIT = 3
KEY_FACT_LIMIT = 10


def build_context(scene: Scene, characters: List[Character], checked_stars: List[Star],
                  recent_tabs: List[DraftTab]) -> str:
    """
    Render the context block for a scene.

    Args:
        scene: Scene being written
        characters: Characters to describe
        checked_stars: Stars flagged for inclusion; the highest priority ones are kept
        recent_tabs: Draft tabs of the scene in order; only the last few are rendered

    Returns:
        Context text made of SCENE, CHARACTERS, SCENE PLAN, RECENT EVENTS and
        KEY FACTS sections (empty sections are omitted)
    """
    lines = [f"### SCENE: {scene.name}"]
    if scene.setting:
        lines.append(f"Setting: {scene.setting}")
    if scene.backstory:
        lines.append(f"Backstory: {scene.backstory}")
    lines.append("")

    if characters:
        lines.append("### CHARACTERS")
        for character in characters:
            lines.append(f"**{character.name}**")
            for key, value in character.fields.items():
                lines.append(f"- {key}: {value}")
            lines.append("")

    if scene.plan.raw_text:
        lines.append("### SCENE PLAN")
        lines.append(scene.plan.raw_text)
        lines.append("")

    if recent_tabs:
        lines.append("### RECENT EVENTS")
        for tab in recent_tabs[-RECENT_TAB_LIMIT:]:
            lines.append(f"**Section {tab.index + 1}**")
            for event in tab.timeline:
                dialogue = f' -> "{event.dialogue}"' if event.dialogue else ''
                lines.append(f"- {event.text}{dialogue}")
            lines.append("")

    if checked_stars:
        lines.append("### KEY FACTS")
        top_stars = sorted(checked_stars, key=lambda s: s.priority, reverse=True)[:KEY_FACT_LIMIT]
        for star in top_stars:
            lines.append(f"- {star.title}: {star.body}")
        lines.append("")

    logger.debug(f"Built context for scene '{scene.name}': {len(characters)} characters, "
                 f"{len(checked_stars)} checked stars, {len(recent_tabs)} tabs")
    return "\n".join(lines) + "\n"


def build_scene_context(document: ProjectDocument, scene_id: str) -> str:
    """
    Render the context block for a scene of a project document.

    Args:
        document: Project document
        scene_id: Id of the scene being written

    Returns:
        Context text

    Raises:
        KeyError: Unknown scene id
    """
    if scene_id not in document.scenes:
        raise KeyError(f"Scene not found: {scene_id}")

    return build_context(
        scene=document.scenes[scene_id],
        characters=list(document.characters.values()),
        checked_stars=document.get_checked_stars(),
        recent_tabs=document.get_draft_tabs_for_scene(scene_id)
    )
