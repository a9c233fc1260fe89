"""
Project data model and persistence.
"""

from .models import (
    ProjectDocument, ProjectMetadata, Scene, ScenePlan, DraftTab, TimelineEvent,
    Description, Star, StarSourceEvent, StarTags, StarScope, StarStatus, Character, PlanStep,
    IdeaBank, Workbench, LLMTab, LLMResponse, repair_references
)
from .store import ProjectStore
from .dialogs import FileDialog, PresetFileDialog

__all__ = [
    'ProjectDocument', 'ProjectMetadata', 'Scene', 'ScenePlan', 'DraftTab', 'TimelineEvent',
    'Description', 'Star', 'StarSourceEvent', 'StarTags', 'StarScope', 'StarStatus', 'Character', 'PlanStep',
    'IdeaBank', 'Workbench', 'LLMTab', 'LLMResponse', 'repair_references',
    'ProjectStore', 'FileDialog', 'PresetFileDialog'
]
