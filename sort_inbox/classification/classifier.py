"""
Note Classifier
===============

Asks the model which configured folder a note belongs to, either one
note per request or several notes in one combined request.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from sort_inbox.classification.models import Note, ClassificationDecision, ClassificationOutcome
from sort_inbox.classification.model_client import (
    GeminiClient,
    build_request,
    SINGLE_MAX_OUTPUT_TOKENS,
    BATCH_MAX_OUTPUT_TOKENS,
)
from sort_inbox.classification.prompts import (
    BatchItem,
    batch_id,
    build_batch_prompt,
    build_single_prompt,
    truncate_content,
)
from sort_inbox.classification.response_parser import parse_batch, parse_single
from sort_inbox.config.settings import Config
from sort_inbox.utils.exceptions import MissingCredentialError, SortInboxError
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class GroupResult:
    """Result of one combined request.

    Attributes:
        decisions: Note path to decision; notes the model skipped are absent.
        failures: Note path to error message for notes that could not be read.
    """
    decisions: Dict[str, ClassificationDecision] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)


async def _pause(seconds: float) -> None:
    """Sleep between request chunks."""
    if seconds > 0:
        await asyncio.sleep(seconds)


def _error_message(error: Exception) -> str:
    if isinstance(error, SortInboxError):
        return error.message
    return str(error) or type(error).__name__


class Classifier:
    """Classifies notes into the configured target folders.

    Example:
        >>> classifier = Classifier(GeminiClient(), vault, Config())
        >>> outcome = await classifier.classify_one(Note("Inbox/idea.md"))
    """

    def __init__(
        self,
        client: GeminiClient,
        vault,
        config: Config,
        log: Optional[logging.Logger] = None,
    ):
        """Initialize the classifier.

        Args:
            client: Model client with an async ``send``.
            vault: File storage with ``read_content(note)``.
            config: Application configuration (read on every call).
            log: Logger override.
        """
        self.client = client
        self.vault = vault
        self.config = config
        self.log = log or logger

    @property
    def folders(self) -> List[str]:
        return self.config.vault.target_folders

    def _api_key(self) -> str:
        api_key = self.config.gemini.resolved_api_key()
        if not api_key:
            raise MissingCredentialError()
        return api_key

    def should_batch(self, count: int) -> bool:
        """Whether ``count`` notes go through combined requests."""
        options = self.config.classification
        return count >= options.batch_threshold and not options.high_accuracy_mode

    async def pause(self) -> None:
        """Wait the configured delay between request groups."""
        await _pause(self.config.classification.chunk_delay_seconds)

    async def classify_one(self, note: Note) -> ClassificationOutcome:
        """Classify a single note.

        Never raises: credential, read and model failures come back as a
        failed outcome.
        """
        options = self.config.classification
        try:
            api_key = self._api_key()
            content = await asyncio.to_thread(self.vault.read_content, note)
            prompt = build_single_prompt(
                note.title,
                truncate_content(content, options.max_content_length),
                self.folders,
            )
            response = await self.client.send(
                build_request(prompt, SINGLE_MAX_OUTPUT_TOKENS),
                api_key=api_key,
                timeout_ms=options.timeout_ms,
            )
            decision = parse_single(response, self.folders, log=self.log)
        except Exception as e:
            self.log.error(f"Failed to classify {note.path}: {_error_message(e)}",
                           extra={"note_path": note.path})
            return ClassificationOutcome.failure(note, _error_message(e))

        self.log.debug(f"{note.path} -> {decision}",
                       extra={"note_path": note.path, "folder": decision.folder})
        return ClassificationOutcome.from_decision(note, decision)

    async def classify_group(self, notes: Sequence[Note]) -> GroupResult:
        """Classify several notes with one combined request.

        Each note is read on its own; an unreadable note is reported in
        ``failures`` and left out of the prompt. No request is sent when
        nothing could be read.

        Raises:
            MissingCredentialError: If no API key is configured.
            ModelClientError: If the request fails.
        """
        result = GroupResult()
        if not notes:
            return result

        options = self.config.classification
        api_key = self._api_key()

        contents = await asyncio.gather(
            *(asyncio.to_thread(self.vault.read_content, note) for note in notes),
            return_exceptions=True,
        )

        id_to_note: Dict[str, Note] = {}
        items = []
        for note, content in zip(notes, contents):
            if isinstance(content, BaseException):
                if not isinstance(content, Exception):
                    raise content
                self.log.error(f"Failed to read {note.path}: {_error_message(content)}",
                               extra={"note_path": note.path})
                result.failures[note.path] = _error_message(content)
                continue

            item_id = batch_id(len(items))
            id_to_note[item_id] = note
            items.append(BatchItem(
                id=item_id,
                title=note.title,
                content=truncate_content(content, options.batch_max_content_length),
            ))

        if not items:
            return result

        response = await self.client.send(
            build_request(build_batch_prompt(items, self.folders), BATCH_MAX_OUTPUT_TOKENS),
            api_key=api_key,
            timeout_ms=options.timeout_ms,
        )
        result.decisions = parse_batch(response, id_to_note, self.folders, log=self.log)
        return result

    async def classify_individually(
        self,
        notes: Sequence[Note],
        progress: Optional[ProgressCallback] = None,
    ) -> List[ClassificationOutcome]:
        """Classify notes one request each, a chunk at a time.

        Requests inside a chunk run concurrently; chunks run in order with a
        pause between them.

        Returns:
            One outcome per note, in input order.
        """
        options = self.config.classification
        size = options.chunk_size
        total = len(notes)
        outcomes: List[ClassificationOutcome] = []

        for start in range(0, total, size):
            chunk = notes[start:start + size]
            if progress:
                progress(start, total, f"Classifying notes {start + 1}-{start + len(chunk)} of {total}")

            outcomes.extend(await asyncio.gather(*(self.classify_one(note) for note in chunk)))

            if start + size < total:
                if progress:
                    progress(len(outcomes), total,
                             f"Waiting {options.chunk_delay_seconds:g}s before the next requests")
                await self.pause()

        return outcomes
