"""
Command entry points consumed by the desktop shell.

Each command wires the LLM client, the response parser and the project store
together. Cancelled file dialogs are reported as None, never as errors.
"""

import dataclasses
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from spica_writer.exceptions import ConfigError
from spica_writer.llm.context_builder import build_scene_context
from spica_writer.llm.openai_client import OpenAIClient
from spica_writer.llm.prompts import StoryPrompts
from spica_writer.llm.response_parser import extract_summary, parse_timeline
from spica_writer.project.dialogs import (
    PROJECT_FILTER_EXTENSIONS, PROJECT_FILTER_LABEL, SUGGESTED_PROJECT_NAME, FileDialog
)
from spica_writer.project.models import DraftTab, LLMResponse, LLMTab, ProjectDocument, now_ms
from spica_writer.project.store import ProjectStore

logger = logging.getLogger(__name__)

GENERATED_TAB_TITLE = "Generated Scene Segment"


class SpicaCommands:
    """
    Facade over the prompt pipeline and project persistence.

    Usage:
        commands = SpicaCommands(OpenAIClient(), ProjectStore(), dialog)
        response = commands.send_prompt(system_prompt, user_prompt)
        commands.save_project(document)
    """

    def __init__(self, client: Optional[OpenAIClient], store: ProjectStore, dialog: FileDialog,
                 max_workers: int = 4):
        """
        Initialize commands.

        Args:
            client: Chat-completions client; None for persistence-only use
            store: Project store
            dialog: File picker used by save-as and open
            max_workers: Worker threads available to submit_prompt
        """
        self.client = client
        self.store = store
        self.dialog = dialog
        self.max_workers = max_workers
        self._executor = None
        self._executor_lock = threading.Lock()

    def send_prompt(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        """
        Send a prompt pair and return the reply as one draft-tab-shaped result.

        Raises:
            ConfigError: No client configured
            LLMError: Any classified client failure
        """
        if self.client is None:
            raise ConfigError("No LLM client configured")

        raw_text = self.client.send_prompt(system_prompt, user_prompt)
        timeline = parse_timeline(raw_text)
        summary, atmosphere = extract_summary(raw_text)

        tab = LLMTab(title=GENERATED_TAB_TITLE, timeline=timeline, summary=summary, atmosphere=atmosphere)
        return LLMResponse(tabs=[tab])

    def submit_prompt(self, system_prompt: str, user_prompt: str) -> "Future[LLMResponse]":
        """Run send_prompt on a worker thread"""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="spica-prompt")
            return self._executor.submit(self.send_prompt, system_prompt, user_prompt)

    def generate_scene_timeline(self, document: ProjectDocument, scene_id: str,
                                user_input: str) -> LLMResponse:
        """
        Build the scene context, assemble the timeline prompt and send it.

        Raises:
            KeyError: Unknown scene id
            LLMError: Any classified client failure
        """
        context = build_scene_context(document, scene_id)
        system_prompt, user_prompt = StoryPrompts.assemble_prompt('scene_timeline', user_input, context)
        logger.info(f"Generating timeline for scene '{document.scenes[scene_id].name}'")
        return self.send_prompt(system_prompt, user_prompt)

    def save_project(self, document: ProjectDocument) -> Path:
        """
        Save to the default project path.

        Returns:
            Path written

        Raises:
            SaveError: Write failed
        """
        path = self.store.resolve_target_path()
        self.store.save(path, self._stamped(document))
        return path

    def save_project_as(self, document: ProjectDocument) -> Optional[Path]:
        """
        Ask the dialog for a destination and save there.

        Returns:
            Path written, or None when the dialog was cancelled

        Raises:
            SaveError: Write failed
        """
        choice = self.dialog.pick_file_for_save(
            self.store.project_dir, SUGGESTED_PROJECT_NAME,
            PROJECT_FILTER_LABEL, PROJECT_FILTER_EXTENSIONS
        )
        if choice is None:
            logger.info("Save cancelled by user")
            return None

        path = self.store.resolve_target_path(choice)
        self.store.save(path, self._stamped(document))
        return path

    def load_project(self) -> ProjectDocument:
        """
        Load the default project, or an empty one if none was saved yet.

        Raises:
            LoadError: File exists but is unreadable or invalid
        """
        return self.store.load_or_default(self.store.resolve_target_path())

    def load_project_from_file(self) -> Optional[ProjectDocument]:
        """
        Ask the dialog for a project file and load it.

        Returns:
            Loaded document, or None when the dialog was cancelled

        Raises:
            LoadError: File is unreadable or invalid
        """
        choice = self.dialog.pick_file_for_open(
            self.store.project_dir, PROJECT_FILTER_LABEL, PROJECT_FILTER_EXTENSIONS
        )
        if choice is None:
            logger.info("Load cancelled by user")
            return None

        return self.store.load_or_default(self.store.resolve_target_path(choice))

    def create_new_project_path(self) -> str:
        """Default project path as a string"""
        return str(self.store.resolve_target_path())

    def shutdown(self):
        """Stop the prompt worker threads, waiting for running calls"""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    @staticmethod
    def _stamped(document: ProjectDocument) -> ProjectDocument:
        """Copy of ``document`` with metadata.updated_at set to now"""
        metadata = dataclasses.replace(document.metadata, updated_at=now_ms())
        return dataclasses.replace(document, metadata=metadata)


def add_generated_tab(document: ProjectDocument, tab: LLMTab) -> DraftTab:
    """
    Store a generated tab in the document's workbench.

    Timeline events receive fresh ids. The tab is not placed in any scene.

    Args:
        document: Document to add to (modified in place)
        tab: Result of a prompt command

    Returns:
        The new DraftTab
    """
    timeline = [
        dataclasses.replace(event, id=str(uuid.uuid4()), associated_stars=[], checked=True)
        for event in tab.timeline
    ]
    draft = DraftTab(
        id=str(uuid.uuid4()),
        index=len(document.workbench.unassigned_draft_tab_ids),
        timeline=timeline,
        summary=tab.summary,
        atmosphere=tab.atmosphere
    )
    document.draft_tabs[draft.id] = draft
    document.workbench.unassigned_draft_tab_ids.append(draft.id)
    logger.info(f"Added draft tab {draft.id} with {len(timeline)} events to workbench")
    return draft
