"""
Classification Prompts
======================

Builds the text sent to the model for single-note and batch requests.
Pure functions: no I/O, same output for the same input.
"""

from typing import Sequence, NamedTuple

NO_CLASSIFICATION = "no classification"
TRUNCATION_MARKER = "..."
BATCH_ID_PREFIX = "file_"


class BatchItem(NamedTuple):
    """One note inside a batch prompt."""
    id: str
    title: str
    content: str


class PromptTemplates:
    """Prompt templates for folder classification."""

    SINGLE_PROMPT = """You are a folder classification assistant.

Choose the ONE folder from the list below that best fits this note.
If none of them fits, answer "{sentinel}".

## Folders
{folders}

## Note title
{title}

## Note body
{content}

Output format (one line):
- the folder name, or "{sentinel}\""""

    BATCH_PROMPT = """You are a folder classification assistant. Classify each of the notes below into the folder that fits it best.

## Folders
{folders}
If a note fits none of the folders, use "{sentinel}".

## Notes
{notes}
--- end of notes ---

## Output format
Return a JSON array with one object per note, using the note ids above:
[
    {{"id": "{first_id}", "folder": "folder name"}},
    ...
]
Use "{sentinel}" as the "folder" value for notes that fit no folder."""

    BATCH_ITEM = """--- note {id}: {title} ---
{content}"""


def truncate_content(content: str, max_length: int) -> str:
    """Cut content to ``max_length`` characters, marking the cut with an ellipsis."""
    if len(content) > max_length:
        return content[:max_length] + TRUNCATION_MARKER
    return content


def batch_id(index: int) -> str:
    """Synthetic id for the note at ``index`` (0-based) in a batch."""
    return f"{BATCH_ID_PREFIX}{index + 1}"


def _render_folders(folders: Sequence[str]) -> str:
    return "\n".join(f"- {folder}" for folder in folders)


def build_single_prompt(title: str, content: str, folders: Sequence[str]) -> str:
    """Build the prompt asking for one folder for one note.

    Args:
        title: Note title.
        content: Note body, already truncated by the caller.
        folders: Allowed folder names, in configured order.

    Returns:
        Prompt text.
    """
    return PromptTemplates.SINGLE_PROMPT.format(
        sentinel=NO_CLASSIFICATION,
        folders=_render_folders(folders),
        title=title,
        content=content,
    )


def build_batch_prompt(items: Sequence[BatchItem], folders: Sequence[str]) -> str:
    """Build the prompt asking for a JSON array of ``{id, folder}`` decisions.

    Args:
        items: Notes to classify, each tagged with a synthetic id.
        folders: Allowed folder names, in configured order.

    Returns:
        Prompt text.
    """
    notes = "\n\n".join(
        PromptTemplates.BATCH_ITEM.format(id=item.id, title=item.title, content=item.content)
        for item in items
    )
    return PromptTemplates.BATCH_PROMPT.format(
        sentinel=NO_CLASSIFICATION,
        folders=_render_folders(folders),
        notes=notes,
        first_id=items[0].id if items else batch_id(0),
    )
