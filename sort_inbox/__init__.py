"""
Sort Inbox
==========

Sorts the notes in a vault's inbox folder into topic folders, asking a
Gemini model which folder each note belongs to.

Features:
- Single-note and combined batch classification requests
- Only one bulk run at a time; per-note failures never stop a run
- Inbox watching and periodic runs for hands-off sorting
"""

__version__ = "0.1.0"
