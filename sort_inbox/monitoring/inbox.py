"""
Inbox Membership
================

Decides which vault paths belong to the inbox. Only direct children of
the inbox folder count; notes in sub-folders are already sorted.
"""

from typing import Optional

from sort_inbox.classification.models import Note


def normalize_folder(folder: str) -> str:
    """Strip trailing slashes from a vault folder path."""
    return (folder or "").rstrip("/")


def is_direct_child(file_path: str, watch_folder: str) -> bool:
    """Whether ``file_path`` sits directly inside ``watch_folder``.

    An empty watch folder means the vault root.

    >>> is_direct_child("Notes/A.md", "Notes")
    True
    >>> is_direct_child("Notes/Sub/A.md", "Notes")
    False
    """
    path = normalize_folder(file_path)
    folder = normalize_folder(watch_folder)

    if not folder:
        return bool(path) and "/" not in path

    prefix = folder + "/"
    if not path.startswith(prefix):
        return False
    remainder = path[len(prefix):]
    return bool(remainder) and "/" not in remainder


def admit_note(path: str) -> Optional[Note]:
    """Return a Note for markdown paths, None for anything else."""
    note = Note(path)
    return note if note.is_markdown else None


def inbox_candidates(notes, inbox_folder: str):
    """Filter notes down to the direct children of ``inbox_folder``."""
    return [note for note in notes if is_direct_child(note.path, inbox_folder)]
