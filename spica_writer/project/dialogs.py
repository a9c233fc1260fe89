"""
File selection boundary.

The desktop shell owns the real open/save dialogs. The core only needs their
two-outcome result: a path, or None when the user cancelled.
"""

from pathlib import Path
from typing import List, Optional, Protocol

PROJECT_FILTER_LABEL = "Spica Projects"
PROJECT_FILTER_EXTENSIONS = ["json"]
SUGGESTED_PROJECT_NAME = "project.json"


class FileDialog(Protocol):
    """Open/save picker supplied by the shell. None means cancelled."""

    def pick_file_for_save(self, default_dir: Path, suggested_name: str,
                           filter_label: str, filter_extensions: List[str]) -> Optional[Path]:
        ...

    def pick_file_for_open(self, default_dir: Path, filter_label: str,
                           filter_extensions: List[str]) -> Optional[Path]:
        ...


class PresetFileDialog:
    """
    Non-interactive picker that answers with a preset choice.

    Used by the command-line shell, where the "picked" file comes from a
    ``--file`` argument and its absence counts as a cancelled dialog.
    """

    def __init__(self, choice: Optional[Path] = None):
        self.choice = Path(choice) if choice else None

    def pick_file_for_save(self, default_dir: Path, suggested_name: str,
                           filter_label: str, filter_extensions: List[str]) -> Optional[Path]:
        if self.choice is None:
            return None
        if self.choice.is_dir():
            return self.choice / suggested_name
        return self.choice

    def pick_file_for_open(self, default_dir: Path, filter_label: str,
                           filter_extensions: List[str]) -> Optional[Path]:
        return self.choice
