"""
Vault File Operations
=====================

File storage for a note vault on the local filesystem: discovery,
reading, folder creation and moves. Paths crossing this boundary are
vault-relative POSIX strings.
"""

from pathlib import Path, PurePosixPath
from typing import List, Optional
import shutil

from sort_inbox.classification.models import Note
from sort_inbox.utils.logging_config import get_logger
from sort_inbox.utils.exceptions import FileProcessingError, MoveFailureError, ErrorCode

logger = get_logger(__name__)


def join_vault_path(*parts: str) -> str:
    """Join vault-relative segments, ignoring empty ones."""
    segments = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/".join(segments)


class VaultFileOperations:
    """Safe file operations inside one vault directory.

    Hidden directories (``.obsidian``, ``.trash``, ...) are never listed.
    """

    def __init__(self, root: Path):
        """Initialize file operations.

        Args:
            root: Vault root directory.
        """
        self.root = Path(root).expanduser()

    def absolute(self, vault_path: str) -> Path:
        """Resolve a vault-relative path on disk."""
        return self.root.joinpath(*PurePosixPath(vault_path).parts) if vault_path else self.root

    def relative(self, file_path: Path) -> Optional[str]:
        """Vault-relative POSIX path of ``file_path``, or None if outside the vault."""
        try:
            return Path(file_path).relative_to(self.root).as_posix()
        except ValueError:
            return None

    def list_markdown_files(self) -> List[Note]:
        """List every markdown note in the vault.

        Returns:
            Notes sorted by path.
        """
        if not self.root.is_dir():
            logger.warning(f"Vault root does not exist: {self.root}")
            return []

        notes = []
        for file_path in self.root.rglob("*.md"):
            rel = file_path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if file_path.is_file():
                notes.append(Note(rel.as_posix()))
        return sorted(notes, key=lambda n: n.path)

    def read_content(self, note: Note) -> str:
        """Read a note body.

        Raises:
            FileProcessingError: If the note cannot be read.
        """
        file_path = self.absolute(note.path)
        try:
            return file_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as e:
            raise FileProcessingError(
                "Note does not exist",
                file_path=note.path,
                error_code=ErrorCode.FILE_NOT_FOUND,
                cause=e,
            )
        except OSError as e:
            raise FileProcessingError(
                f"Failed to read note: {e}",
                file_path=note.path,
                error_code=ErrorCode.READ_FAILED,
                cause=e,
            )

    def folder_exists(self, folder: str) -> bool:
        return self.absolute(folder).is_dir()

    def create_folder(self, folder: str) -> None:
        """Create a vault folder and any missing parents.

        Raises:
            MoveFailureError: If the folder cannot be created.
        """
        try:
            self.absolute(folder).mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created folder: {folder}")
        except OSError as e:
            raise MoveFailureError(
                f"Failed to create folder: {e}",
                destination=folder,
                error_code=ErrorCode.FOLDER_CREATE_FAILED,
                cause=e,
            )

    def rename_or_move(self, note: Note, new_path: str) -> str:
        """Move a note to ``new_path``.

        A name already taken at the destination gets a ``_N`` suffix.

        Returns:
            Final vault-relative path of the note.

        Raises:
            MoveFailureError: If the move fails; the note stays where it was.
        """
        source = self.absolute(note.path)
        if not source.exists():
            raise MoveFailureError(
                "Source note does not exist",
                file_path=note.path,
                destination=new_path,
                error_code=ErrorCode.FILE_NOT_FOUND,
            )

        dest_path = self._resolve_conflict(self.absolute(new_path))

        try:
            shutil.move(str(source), str(dest_path))
        except OSError as e:
            raise MoveFailureError(
                f"Failed to move note: {e}",
                file_path=note.path,
                destination=new_path,
                cause=e,
            )

        final_path = dest_path.relative_to(self.root).as_posix()
        logger.info(f"Moved: {note.path} -> {final_path}")
        return final_path

    def _resolve_conflict(self, dest_path: Path) -> Path:
        """Resolve filename conflict by appending counter.

        Args:
            dest_path: Desired destination path.

        Returns:
            Available path (may have counter suffix).
        """
        if not dest_path.exists():
            return dest_path

        stem = dest_path.stem
        suffix = dest_path.suffix
        parent = dest_path.parent

        counter = 1
        while True:
            new_path = parent / f"{stem}_{counter}{suffix}"
            if not new_path.exists():
                return new_path
            counter += 1
            if counter > 1000:
                raise MoveFailureError(
                    "Too many notes with the same name",
                    file_path=str(dest_path),
                )
