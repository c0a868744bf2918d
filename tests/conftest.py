"""
Shared fixtures: an on-disk temporary vault, an in-memory model client
and a notifier that records messages instead of calling notify-send.
"""

import json
import re
from pathlib import Path

import pytest

from sort_inbox.actions.file_operations import VaultFileOperations
from sort_inbox.classification.models import Note
from sort_inbox.config.settings import (
    Config,
    VaultConfig,
    GeminiConfig,
    ClassificationOptions,
)
from sort_inbox.utils.notifications import DesktopNotifier, NotificationConfig

SINGLE_BODY = re.compile(r"## Note body\n(.*?)\n\nOutput format", re.DOTALL)
BATCH_ITEM = re.compile(
    r"--- note (file_\d+): .*? ---\n(.*?)(?=\n\n--- note |\n--- end of notes ---)",
    re.DOTALL,
)


def gemini_response(text):
    """Wrap answer text the way generateContent returns it."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def keyword_responder(rules, default="no classification"):
    """Answer prompts by looking for keywords in note bodies.

    ``rules`` maps a keyword to the folder it should produce.
    """
    def pick(body):
        for keyword, folder in rules.items():
            if keyword in body:
                return folder
        return default

    def respond(prompt):
        if "--- end of notes ---" in prompt:
            answer = [
                {"id": item_id, "folder": pick(body)}
                for item_id, body in BATCH_ITEM.findall(prompt)
            ]
            return gemini_response("```json\n" + json.dumps(answer) + "\n```")
        match = SINGLE_BODY.search(prompt)
        return gemini_response(pick(match.group(1) if match else ""))

    return respond


class FakeModelClient:
    """In-memory stand-in for GeminiClient.

    ``responder`` receives the prompt text and returns a response mapping,
    or raises to simulate a failed request.
    """

    def __init__(self, responder=None):
        self.responder = responder or keyword_responder({})
        self.requests = []
        self.closed = False

    async def send(self, request, *, api_key, timeout_ms=10000):
        prompt = request["contents"][0]["parts"][0]["text"]
        self.requests.append({
            "prompt": prompt,
            "api_key": api_key,
            "timeout_ms": timeout_ms,
            "max_output_tokens": request["generationConfig"]["maxOutputTokens"],
        })
        return self.responder(prompt)

    async def verify_credential(self, api_key, timeout_ms=10000):
        return api_key == "good-key"

    async def aclose(self):
        self.closed = True


class RecordingNotifier(DesktopNotifier):
    """Notifier that keeps messages in memory."""

    def __init__(self):
        super().__init__(NotificationConfig())
        self.messages = []

    @property
    def is_available(self) -> bool:
        return False

    def send(self, title, message, notif_type=None):
        self.messages.append((title, message))
        return False


def write_note(root: Path, vault_path: str, body: str) -> Note:
    """Create a note file inside a vault."""
    file_path = root.joinpath(*vault_path.split("/"))
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(body, encoding="utf-8")
    return Note(vault_path)


@pytest.fixture
def vault_root(tmp_path):
    """Empty vault directory."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def vault(vault_root):
    return VaultFileOperations(vault_root)


@pytest.fixture
def config(vault_root, tmp_path):
    """Config for a "Notes" inbox with Work and Journal folders, no delays."""
    return Config(
        vault=VaultConfig(
            root=vault_root,
            inbox_folder="Notes",
            target_folders=["Work", "Journal"],
        ),
        gemini=GeminiConfig(api_key="test-key"),
        classification=ClassificationOptions(chunk_delay_seconds=0),
        source_path=tmp_path / "config.yaml",
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()
