"""
Project persistence.

Reads and writes the project document as a single UTF-8 JSON file. Writes go
through a temporary file in the target directory followed by an atomic
rename, so an interrupted save never leaves the previous file unreadable.
"""

import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

from spica_writer.exceptions import LoadError, SaveError
from spica_writer.project.models import DEFAULT_PROJECT_TITLE, ProjectDocument, repair_references

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_DIR = Path.home() / "Documents" / "SpicaWriter"
DEFAULT_PROJECT_FILE = "last_project.json"

PathLike = Union[str, Path]


class ProjectStore:
    """
    Loads and saves project documents.

    Usage:
        store = ProjectStore()
        path = store.resolve_target_path()
        document = store.load_or_default(path)
        store.save(path, document)
    """

    def __init__(
        self,
        project_dir: Optional[PathLike] = None,
        project_file: str = DEFAULT_PROJECT_FILE
    ):
        """
        Initialize project store.

        Args:
            project_dir: Directory holding the default project file
                (default: ~/Documents/SpicaWriter)
            project_file: File name of the default project
        """
        self.project_dir = Path(project_dir).expanduser() if project_dir else DEFAULT_PROJECT_DIR
        self.project_file = project_file

    @property
    def default_path(self) -> Path:
        """Path of the default project file"""
        return self.project_dir / self.project_file

    def resolve_target_path(self, explicit_choice: Optional[PathLike] = None) -> Path:
        """
        Pick the file a load or save should use.

        Args:
            explicit_choice: Path chosen by the user, if any

        Returns:
            The explicit choice, or the default project path. The default
            project directory is created when it is returned.
        """
        if explicit_choice:
            return Path(explicit_choice)

        self.project_dir.mkdir(parents=True, exist_ok=True)
        return self.default_path

    @staticmethod
    def empty_document(title: str = DEFAULT_PROJECT_TITLE, author: Optional[str] = None) -> ProjectDocument:
        """Create empty project structure."""
        return ProjectDocument.empty(title=title, author=author)

    def load_or_default(self, path: PathLike) -> ProjectDocument:
        """
        Load the project at ``path``, or a fresh empty one if it does not exist.

        Nothing is written when the file is missing.

        Args:
            path: Project file path

        Returns:
            ProjectDocument with dangling references removed

        Raises:
            LoadError: File exists but cannot be read or is not a valid project
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No project at {path}, starting with an empty document")
            return self.empty_document()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read project file {path}: {e}")
            raise LoadError(path, e) from e
        except json.JSONDecodeError as e:
            logger.error(f"Project file {path} is not valid JSON: {e}")
            raise LoadError(path, e) from e

        try:
            document = ProjectDocument.from_dict(data)
            repair_references(document)
        except KeyError as e:
            logger.error(f"Project file {path} is missing required field {e}")
            raise LoadError(path, f"missing required field {e}") from e
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Project file {path} has an invalid structure: {e}")
            raise LoadError(path, e) from e

        logger.info(f"Loaded project '{document.metadata.title}' from {path} "
                    f"({len(document.scenes)} scenes, {len(document.draft_tabs)} draft tabs)")
        return document

    def save(self, path: PathLike, document: ProjectDocument) -> None:
        """
        Write ``document`` to ``path``.

        Args:
            path: Project file path; its parent directory must exist
            document: Document to serialize (not modified)

        Raises:
            SaveError: Serialization or any filesystem failure
        """
        path = Path(path)

        try:
            payload = json.dumps(document.to_dict(), indent=2, ensure_ascii=False).encode('utf-8')
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize project for {path}: {e}")
            raise SaveError(path, e) from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, 'wb') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, self._target_mode(path))
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed to save project to {path}: {e}")
            raise SaveError(path, e) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {tmp_name}: {e}")

        logger.info(f"Saved project '{document.metadata.title}' to {path}")

    @staticmethod
    def _target_mode(path: Path) -> int:
        """Permission bits for a saved file: the existing file's, else 0o666 minus umask"""
        try:
            return stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask
