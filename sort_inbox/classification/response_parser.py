"""
Response Parsing
================

Turns untrusted model output into validated classification decisions.
Nothing here raises to the caller: malformed output degrades to
"unclassified" (single) or an empty mapping (batch).
"""

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from sort_inbox.classification.models import Note, ClassificationDecision, UNCLASSIFIED
from sort_inbox.classification.prompts import NO_CLASSIFICATION
from sort_inbox.utils.exceptions import MalformedResponseError, InvalidDestinationError
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

RawOutput = Union[str, Mapping[str, Any], None]

# "[ {...} ]" spans in free-form text; the model may wrap them in prose.
# The shortest span is tried first, then the widest one (nested brackets).
FIRST_JSON_ARRAY_PATTERN = re.compile(r"\[\s*\{.*?\}\s*\]", re.DOTALL)
JSON_ARRAY_PATTERN = re.compile(r"\[\s*\{.*\}\s*\]", re.DOTALL)


def extract_text(response: RawOutput) -> Optional[str]:
    """Return the first candidate's text from a generateContent response.

    Plain strings are returned as-is.

    Raises:
        MalformedResponseError: If candidates exist but lack the text part.
    """
    if response is None:
        return None
    if isinstance(response, str):
        return response

    candidates = response.get("candidates") or []
    if not candidates:
        return None

    try:
        text = candidates[0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError("Candidate has no text part", cause=e)
    if not isinstance(text, str):
        raise MalformedResponseError("Candidate text is not a string")
    return text


def _is_sentinel(text: str) -> bool:
    return NO_CLASSIFICATION in text.lower()


def parse_single(
    raw: RawOutput,
    allowed_folders: Sequence[str],
    log: Optional[logging.Logger] = None,
) -> ClassificationDecision:
    """Pick the destination named in a single-note answer.

    The first folder, in configured order, that the answer equals, ends with
    or contains wins; an answer mentioning "no classification" wins over all.

    Args:
        raw: Model response mapping or its text.
        allowed_folders: Configured folder names.
        log: Logger override.

    Returns:
        Folder decision, or UNCLASSIFIED.
    """
    log = log or logger
    try:
        text = extract_text(raw)
        if text is None:
            log.debug("Model response has no candidates")
            return UNCLASSIFIED

        text = text.strip()
        log.debug(f"Model answer: {text!r}")

        if text == NO_CLASSIFICATION or _is_sentinel(text):
            return UNCLASSIFIED

        for folder in allowed_folders:
            if not folder:
                continue
            if text == folder or text.endswith(folder) or folder in text:
                return ClassificationDecision(folder)

        return UNCLASSIFIED

    except Exception as e:
        log.warning(f"Could not interpret model response: {e}")
        return UNCLASSIFIED


def validate_destination(value: Any, allowed_folders: Sequence[str]) -> ClassificationDecision:
    """Validate one folder value from a batch answer.

    Raises:
        InvalidDestinationError: If the value is not an exact folder member.
    """
    if isinstance(value, str) and value.strip().lower() == NO_CLASSIFICATION:
        return UNCLASSIFIED
    if isinstance(value, str) and value in allowed_folders:
        return ClassificationDecision(value)
    raise InvalidDestinationError(str(value))


def _load_json_array(text: str) -> list:
    if not JSON_ARRAY_PATTERN.search(text):
        raise MalformedResponseError("No JSON array found in model output", raw_text=text)

    error = None
    for pattern in (FIRST_JSON_ARRAY_PATTERN, JSON_ARRAY_PATTERN):
        candidate = pattern.search(text).group(0)
        try:
            payload = json.loads(candidate)
            break
        except json.JSONDecodeError as e:
            error = e
    else:
        raise MalformedResponseError("Model JSON array could not be parsed",
                                     raw_text=candidate, cause=error)

    if not isinstance(payload, list):
        raise MalformedResponseError("Model JSON is not an array", raw_text=candidate)
    return payload


def parse_batch(
    raw: RawOutput,
    id_to_note: Mapping[str, Note],
    allowed_folders: Sequence[str],
    log: Optional[logging.Logger] = None,
) -> Dict[str, ClassificationDecision]:
    """Map a batch answer back to notes.

    Args:
        raw: Model response mapping or its text.
        id_to_note: Synthetic batch id to note.
        allowed_folders: Configured folder names.
        log: Logger override.

    Returns:
        Note path to decision. Notes the model did not answer for are absent;
        the whole mapping is empty when no JSON array can be read.
    """
    log = log or logger
    results: Dict[str, ClassificationDecision] = {}

    try:
        text = extract_text(raw)
        if text is None:
            log.error("Batch classification: response has no candidates")
            return results
        payload = _load_json_array(text.strip())
    except MalformedResponseError as e:
        log.error(f"Batch classification: {e.message}")
        return results

    for item in payload:
        if not isinstance(item, dict):
            log.warning(f"Batch classification: ignoring non-object entry {item!r}")
            continue

        note_id = item.get("id")
        note = id_to_note.get(note_id) if isinstance(note_id, str) else None
        if note is None:
            log.warning(f"Batch classification: no note for id {note_id!r}")
            continue

        try:
            results[note.path] = validate_destination(item.get("folder"), allowed_folders)
        except InvalidDestinationError as e:
            log.debug(f"{note.path}: {e.message}")
            results[note.path] = UNCLASSIFIED

    return results
