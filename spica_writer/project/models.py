"""
Project Data Models
===================

Data classes for the persisted Spica project document.

Field names match the keys of the JSON project file. Every entity that lives
in an id-keyed mapping carries its own ``id``; cross references between
entities are plain id strings, never object pointers.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
DEFAULT_PROJECT_TITLE = "New Project"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


class StarScope(str, Enum):
    """Narrative scope a star applies to"""
    CURRENT_SCENE = "CurrentScene"
    FUTURE_PLOT = "FuturePlot"
    BACKSTORY = "Backstory"
    WORLDBUILDING = "Worldbuilding"


class StarStatus(str, Enum):
    """Lifecycle status of a star"""
    ACTIVE = "Active"
    RESOLVED = "Resolved"
    DEFERRED = "Deferred"


@dataclass
class TimelineEvent:
    """
    One beat of scene content: narration text plus optional dialogue.

    ``id``, ``associated_stars`` and ``checked`` are only populated once the
    event is stored in a draft tab; parsed model output leaves them at their
    defaults.
    """
    text: str
    dialogue: Optional[str] = None
    id: Optional[str] = None
    associated_stars: List[str] = field(default_factory=list)
    checked: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'text': self.text,
            'dialogue': self.dialogue,
            'associated_stars': list(self.associated_stars),
            'checked': self.checked
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineEvent':
        """Create from dictionary"""
        return cls(
            text=data['text'],
            dialogue=data.get('dialogue'),
            id=data.get('id'),
            associated_stars=list(data.get('associated_stars') or []),
            checked=bool(data.get('checked', True))
        )


@dataclass
class Description:
    """Freeform annotation attached to a draft tab or one of its events"""
    id: str
    text: str
    is_important: bool = False
    origin_star_id: Optional[str] = None
    target_event_id: Optional[str] = None
    scope: str = "tab"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'text': self.text,
            'is_important': self.is_important,
            'origin_star_id': self.origin_star_id,
            'target_event_id': self.target_event_id,
            'scope': self.scope
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Description':
        """Create from dictionary"""
        return cls(
            id=data['id'],
            text=data['text'],
            is_important=bool(data['is_important']),
            origin_star_id=data.get('origin_star_id'),
            target_event_id=data.get('target_event_id'),
            scope=data.get('scope') or "tab"
        )


@dataclass
class PlanStep:
    """One discrete beat of a scene outline"""
    id: str
    text: str
    fulfilled_by: List[str] = field(default_factory=list)
    linked_stars: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'text': self.text,
            'fulfilled_by': list(self.fulfilled_by),
            'linked_stars': list(self.linked_stars)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlanStep':
        """Create from dictionary"""
        return cls(
            id=data['id'],
            text=data['text'],
            fulfilled_by=list(data['fulfilled_by']),
            linked_stars=list(data['linked_stars'])
        )


@dataclass
class ScenePlan:
    """Raw planning text plus the steps parsed out of it"""
    raw_text: str = ""
    parsed_steps: List[PlanStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'raw_text': self.raw_text,
            'parsed_steps': [s.to_dict() for s in self.parsed_steps]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScenePlan':
        """Create from dictionary"""
        return cls(
            raw_text=data['raw_text'],
            parsed_steps=[PlanStep.from_dict(s) for s in data['parsed_steps']]
        )


@dataclass
class Scene:
    """
    A scene of the project.

    Attributes:
        id: Scene id
        name: Display name
        setting: Optional setting text
        backstory: Optional backstory text
        plan: The scene's outline
        draft_tab_ids: Ordered ids of the draft tabs placed in this scene
        created_at: Creation time (epoch ms)
        updated_at: Last modification time (epoch ms)
    """
    id: str
    name: str
    setting: Optional[str] = None
    backstory: Optional[str] = None
    plan: ScenePlan = field(default_factory=ScenePlan)
    draft_tab_ids: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'setting': self.setting,
            'backstory': self.backstory,
            'plan': self.plan.to_dict(),
            'draft_tab_ids': list(self.draft_tab_ids),
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Scene':
        """Create from dictionary"""
        return cls(
            id=data['id'],
            name=data['name'],
            setting=data.get('setting'),
            backstory=data.get('backstory'),
            plan=ScenePlan.from_dict(data['plan']),
            draft_tab_ids=list(data['draft_tab_ids']),
            created_at=int(data['created_at']),
            updated_at=int(data['updated_at'])
        )


@dataclass
class DraftTab:
    """
    A container of timeline events for one pass of a scene segment.

    ``scene_id`` is None while the tab sits in the idea bank or workbench.
    """
    id: str
    scene_id: Optional[str] = None
    index: int = 0
    timeline: List[TimelineEvent] = field(default_factory=list)
    descriptions: List[Description] = field(default_factory=list)
    summary: Optional[str] = None
    atmosphere: Optional[str] = None
    fulfilled_plan_steps: List[str] = field(default_factory=list)
    suggested_plan_steps: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'scene_id': self.scene_id,
            'index': self.index,
            'timeline': [e.to_dict() for e in self.timeline],
            'descriptions': [d.to_dict() for d in self.descriptions],
            'summary': self.summary,
            'atmosphere': self.atmosphere,
            'fulfilled_plan_steps': list(self.fulfilled_plan_steps),
            'suggested_plan_steps': list(self.suggested_plan_steps),
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DraftTab':
        """Create from dictionary"""
        return cls(
            id=data['id'],
            scene_id=data.get('scene_id'),
            index=int(data['index']),
            timeline=[TimelineEvent.from_dict(e) for e in data['timeline']],
            descriptions=[Description.from_dict(d) for d in data['descriptions']],
            summary=data.get('summary'),
            atmosphere=data.get('atmosphere'),
            fulfilled_plan_steps=list(data['fulfilled_plan_steps']),
            suggested_plan_steps=list(data['suggested_plan_steps']),
            created_at=int(data['created_at']),
            updated_at=int(data['updated_at'])
        )


@dataclass
class StarTags:
    """Classification of a star"""
    characters: List[str] = field(default_factory=list)
    scope: StarScope = StarScope.CURRENT_SCENE
    status: StarStatus = StarStatus.ACTIVE
    custom: List[str] = field(default_factory=list)
    constraint_context: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'characters': list(self.characters),
            'scope': self.scope.value,
            'status': self.status.value,
            'custom': list(self.custom),
            'constraint_context': list(self.constraint_context) if self.constraint_context is not None else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StarTags':
        """Create from dictionary"""
        constraint_context = data.get('constraint_context')
        return cls(
            characters=list(data['characters']),
            scope=StarScope(data['scope']),
            status=StarStatus(data['status']),
            custom=list(data['custom']),
            constraint_context=list(constraint_context) if constraint_context is not None else None
        )


@dataclass
class StarSourceEvent:
    """Snapshot of the timeline event a constraint star was raised from"""
    tab_id: str
    event_id: str
    event_text: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'tab_id': self.tab_id,
            'event_id': self.event_id,
            'event_text': self.event_text
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StarSourceEvent':
        """Create from dictionary"""
        return cls(tab_id=data['tab_id'], event_id=data['event_id'], event_text=data['event_text'])


@dataclass
class Star:
    """
    A tagged note capturing an idea, plot thread or reminder.

    Attributes:
        id: Star id
        title: Short title
        body: Note body
        tags: Characters, scope, status and custom tags
        priority: Relevance score, higher sorts first in prompt context
        is_checked: Whether the star is included in prompt context
        origin_draft_tab_id: Draft tab the star was captured from
        created_at: Creation time (epoch ms)
        last_used_in_prompt: Last time the star was sent to the model (epoch ms)
        constraint_type: Kind of character constraint, if any
        applies_to_character: Character id the constraint applies to
        situation_context: Free text describing when the constraint applies
        source_event: Event snapshot a constraint star was raised from
    """
    id: str
    title: str
    body: str
    tags: StarTags = field(default_factory=StarTags)
    priority: float = 0.5
    is_checked: bool = False
    origin_draft_tab_id: Optional[str] = None
    created_at: int = field(default_factory=now_ms)
    last_used_in_prompt: Optional[int] = None
    constraint_type: Optional[str] = None
    applies_to_character: Optional[str] = None
    situation_context: Optional[str] = None
    source_event: Optional[StarSourceEvent] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'title': self.title,
            'body': self.body,
            'tags': self.tags.to_dict(),
            'priority': self.priority,
            'is_checked': self.is_checked,
            'origin_draft_tab_id': self.origin_draft_tab_id,
            'created_at': self.created_at,
            'last_used_in_prompt': self.last_used_in_prompt,
            'constraint_type': self.constraint_type,
            'applies_to_character': self.applies_to_character,
            'situation_context': self.situation_context,
            'source_event': self.source_event.to_dict() if self.source_event else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Star':
        """Create from dictionary"""
        last_used = data.get('last_used_in_prompt')
        source_event = data.get('source_event')
        return cls(
            id=data['id'],
            title=data['title'],
            body=data['body'],
            tags=StarTags.from_dict(data['tags']),
            priority=float(data['priority']),
            is_checked=bool(data['is_checked']),
            origin_draft_tab_id=data.get('origin_draft_tab_id'),
            created_at=int(data['created_at']),
            last_used_in_prompt=int(last_used) if last_used is not None else None,
            constraint_type=data.get('constraint_type'),
            applies_to_character=data.get('applies_to_character'),
            situation_context=data.get('situation_context'),
            source_event=StarSourceEvent.from_dict(source_event) if source_event is not None else None
        )


@dataclass
class Character:
    """A character with an open, ordered bag of text fields"""
    id: str
    name: str
    fields: Dict[str, str] = field(default_factory=dict)
    is_checked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'id': self.id,
            'name': self.name,
            'fields': dict(self.fields),
            'is_checked': self.is_checked
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Character':
        """Create from dictionary"""
        return cls(
            id=data['id'],
            name=data['name'],
            fields={str(k): str(v) for k, v in data['fields'].items()},
            is_checked=bool(data.get('is_checked', False))
        )


@dataclass
class ProjectMetadata:
    """Title, author and timestamps of a project"""
    title: str = DEFAULT_PROJECT_TITLE
    author: Optional[str] = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'title': self.title,
            'author': self.author,
            'created_at': self.created_at,
            'updated_at': self.updated_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectMetadata':
        """Create from dictionary"""
        return cls(
            title=data['title'],
            author=data.get('author'),
            created_at=int(data['created_at']),
            updated_at=int(data['updated_at'])
        )


@dataclass
class IdeaBank:
    """Draft tabs parked outside any scene"""
    stored_draft_tab_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'stored_draft_tab_ids': list(self.stored_draft_tab_ids)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IdeaBank':
        return cls(stored_draft_tab_ids=list(data['stored_draft_tab_ids']))


@dataclass
class Workbench:
    """Freshly generated draft tabs not yet placed in a scene"""
    unassigned_draft_tab_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'unassigned_draft_tab_ids': list(self.unassigned_draft_tab_ids)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Workbench':
        return cls(unassigned_draft_tab_ids=list(data['unassigned_draft_tab_ids']))


def _mapping_from_dict(data: Dict[str, Any], key: str, entity_cls) -> Dict[str, Any]:
    """Deserialize one id-keyed mapping of the project document"""
    raw = data[key]
    if not isinstance(raw, dict):
        raise TypeError(f"'{key}' must be an object keyed by id, got {type(raw).__name__}")
    return {entity_id: entity_cls.from_dict(value) for entity_id, value in raw.items()}


@dataclass
class ProjectDocument:
    """
    The versioned project document.

    Attributes:
        version: Schema version string
        metadata: Title, author and timestamps
        scenes: Scenes keyed by id
        draft_tabs: Draft tabs keyed by id
        stars: Stars keyed by id
        characters: Characters keyed by id
        plan_steps: Plan steps keyed by id
        idea_bank: Ordered draft-tab ids parked outside any scene
        workbench: Ordered draft-tab ids awaiting placement
        active_scene_id: Scene currently open in the editor
    """
    version: str = SCHEMA_VERSION
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)
    scenes: Dict[str, Scene] = field(default_factory=dict)
    draft_tabs: Dict[str, DraftTab] = field(default_factory=dict)
    stars: Dict[str, Star] = field(default_factory=dict)
    characters: Dict[str, Character] = field(default_factory=dict)
    plan_steps: Dict[str, PlanStep] = field(default_factory=dict)
    idea_bank: IdeaBank = field(default_factory=IdeaBank)
    workbench: Workbench = field(default_factory=Workbench)
    active_scene_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-ready structure written to the project file"""
        return {
            'version': self.version,
            'metadata': self.metadata.to_dict(),
            'scenes': {k: v.to_dict() for k, v in self.scenes.items()},
            'draft_tabs': {k: v.to_dict() for k, v in self.draft_tabs.items()},
            'stars': {k: v.to_dict() for k, v in self.stars.items()},
            'characters': {k: v.to_dict() for k, v in self.characters.items()},
            'plan_steps': {k: v.to_dict() for k, v in self.plan_steps.items()},
            'idea_bank': self.idea_bank.to_dict(),
            'workbench': self.workbench.to_dict(),
            'active_scene_id': self.active_scene_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectDocument':
        """
        Create from a decoded project file.

        Unknown keys are ignored. A missing required key or a value of the
        wrong shape raises KeyError, TypeError or ValueError.

        Args:
            data: Decoded JSON object

        Returns:
            ProjectDocument instance
        """
        if not isinstance(data, dict):
            raise TypeError(f"Project document must be a JSON object, got {type(data).__name__}")

        workbench = data.get('workbench')
        return cls(
            version=str(data['version']),
            metadata=ProjectMetadata.from_dict(data['metadata']),
            scenes=_mapping_from_dict(data, 'scenes', Scene),
            draft_tabs=_mapping_from_dict(data, 'draft_tabs', DraftTab),
            stars=_mapping_from_dict(data, 'stars', Star),
            characters=_mapping_from_dict(data, 'characters', Character),
            plan_steps=_mapping_from_dict(data, 'plan_steps', PlanStep),
            idea_bank=IdeaBank.from_dict(data['idea_bank']),
            workbench=Workbench.from_dict(workbench) if workbench is not None else Workbench(),
            active_scene_id=data.get('active_scene_id')
        )

    @classmethod
    def empty(cls, title: str = DEFAULT_PROJECT_TITLE, author: Optional[str] = None) -> 'ProjectDocument':
        """Fresh document with no content, stamped with the current time"""
        stamp = now_ms()
        return cls(metadata=ProjectMetadata(title=title, author=author, created_at=stamp, updated_at=stamp))

    def get_checked_stars(self) -> List[Star]:
        """Stars flagged for inclusion in prompt context"""
        return [star for star in self.stars.values() if star.is_checked]

    def get_draft_tabs_for_scene(self, scene_id: str) -> List[DraftTab]:
        """Draft tabs of a scene in scene order, skipping unknown ids"""
        scene = self.scenes.get(scene_id)
        if scene is None:
            return []
        return [self.draft_tabs[tab_id] for tab_id in scene.draft_tab_ids if tab_id in self.draft_tabs]


@dataclass
class LLMTab:
    """A draft-tab-shaped result produced from one model reply"""
    title: str
    timeline: List[TimelineEvent]
    summary: Optional[str] = None
    atmosphere: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'title': self.title,
            'timeline': [{'text': e.text, 'dialogue': e.dialogue} for e in self.timeline],
            'summary': self.summary,
            'atmosphere': self.atmosphere
        }


@dataclass
class LLMResponse:
    """Result of a prompt command"""
    tabs: List[LLMTab] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'tabs': [t.to_dict() for t in self.tabs]}


def _keep_known(ids: List[str], known: Dict[str, Any], label: str, owner: str) -> List[str]:
    """Filter ``ids`` down to keys of ``known``, logging each dropped id"""
    kept = []
    for ref in ids:
        if ref in known:
            kept.append(ref)
        else:
            logger.warning(f"Dropping dangling {label} reference '{ref}' from {owner}")
    return kept


def repair_references(document: ProjectDocument) -> int:
    """
    Drop dangling cross references in place.

    Every id stored inside an entity must be a key of the corresponding
    mapping. References that are not are removed (lists) or cleared
    (optional single ids).

    Args:
        document: Document to repair

    Returns:
        Number of references removed
    """
    removed = 0

    def prune(ids: List[str], known: Dict[str, Any], label: str, owner: str) -> List[str]:
        nonlocal removed
        kept = _keep_known(ids, known, label, owner)
        removed += len(ids) - len(kept)
        return kept

    def clear(ref: Optional[str], known: Dict[str, Any], label: str, owner: str) -> Optional[str]:
        nonlocal removed
        if ref is not None and ref not in known:
            logger.warning(f"Clearing dangling {label} reference '{ref}' on {owner}")
            removed += 1
            return None
        return ref

    def repair_plan_step(step: PlanStep, owner: str) -> None:
        step.fulfilled_by = prune(step.fulfilled_by, document.draft_tabs, 'draft tab', owner)
        step.linked_stars = prune(step.linked_stars, document.stars, 'star', owner)

    for scene_id, scene in document.scenes.items():
        owner = f"scene {scene_id}"
        scene.draft_tab_ids = prune(scene.draft_tab_ids, document.draft_tabs, 'draft tab', owner)
        for step in scene.plan.parsed_steps:
            repair_plan_step(step, f"{owner} plan step {step.id}")

    for tab_id, tab in document.draft_tabs.items():
        owner = f"draft tab {tab_id}"
        tab.scene_id = clear(tab.scene_id, document.scenes, 'scene', owner)
        tab.fulfilled_plan_steps = prune(tab.fulfilled_plan_steps, document.plan_steps, 'plan step', owner)
        for event in tab.timeline:
            event.associated_stars = prune(event.associated_stars, document.stars, 'star', owner)
        for description in tab.descriptions:
            description.origin_star_id = clear(description.origin_star_id, document.stars, 'star', owner)

    for star_id, star in document.stars.items():
        owner = f"star {star_id}"
        star.origin_draft_tab_id = clear(star.origin_draft_tab_id, document.draft_tabs, 'draft tab', owner)
        star.tags.characters = prune(star.tags.characters, document.characters, 'character', owner)

    for step_id, step in document.plan_steps.items():
        repair_plan_step(step, f"plan step {step_id}")

    document.idea_bank.stored_draft_tab_ids = prune(
        document.idea_bank.stored_draft_tab_ids, document.draft_tabs, 'draft tab', 'idea bank')
    document.workbench.unassigned_draft_tab_ids = prune(
        document.workbench.unassigned_draft_tab_ids, document.draft_tabs, 'draft tab', 'workbench')
    document.active_scene_id = clear(document.active_scene_id, document.scenes, 'scene', 'project')

    if removed:
        logger.warning(f"Repaired {removed} dangling reference(s) in project document")
    return removed
