"""Classification module: prompts, model client, response parsing and the classifier."""

from .models import (
    Note,
    ClassificationDecision,
    ClassificationOutcome,
    OutcomeKind,
    RunSummary,
    UNCLASSIFIED,
)
from .model_client import GeminiClient, build_request
from .classifier import Classifier, GroupResult
from .response_parser import parse_single, parse_batch
from .prompts import build_single_prompt, build_batch_prompt, truncate_content

__all__ = [
    "Note",
    "ClassificationDecision",
    "ClassificationOutcome",
    "OutcomeKind",
    "RunSummary",
    "UNCLASSIFIED",
    "GeminiClient",
    "build_request",
    "Classifier",
    "GroupResult",
    "parse_single",
    "parse_batch",
    "build_single_prompt",
    "build_batch_prompt",
    "truncate_content",
]
