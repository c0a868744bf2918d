"""Actions module: vault file operations and classification history."""

from .file_operations import VaultFileOperations, join_vault_path
from .history_tracker import HistoryTracker, HistoryEntry

__all__ = [
    "VaultFileOperations",
    "join_vault_path",
    "HistoryTracker",
    "HistoryEntry",
]
