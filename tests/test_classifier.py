"""
Unit tests for the note classifier.
"""

import asyncio

import pytest

from sort_inbox.classification import classifier as classifier_module
from sort_inbox.classification.classifier import Classifier
from sort_inbox.classification.models import ClassificationDecision, Note, OutcomeKind, UNCLASSIFIED
from sort_inbox.config.settings import ClassificationOptions
from sort_inbox.utils.exceptions import MissingCredentialError, ModelTimeoutError, UpstreamError

from conftest import FakeModelClient, gemini_response, keyword_responder, write_note


@pytest.fixture
def client():
    return FakeModelClient(keyword_responder({"meeting": "Work", "reflections": "Journal"}))


@pytest.fixture
def classifier(client, vault, config):
    return Classifier(client, vault, config)


class TestShouldBatch:
    """Tests for the batching policy."""

    def test_threshold(self, classifier):
        assert classifier.should_batch(2) is False
        assert classifier.should_batch(3) is True

    def test_high_accuracy_disables_batching(self, classifier, config):
        config.classification.high_accuracy_mode = True
        assert classifier.should_batch(50) is False


class TestClassifyOne:
    """Tests for Classifier.classify_one."""

    def test_classified(self, classifier, client, vault_root):
        note = write_note(vault_root, "Notes/A.md", "Notes from the meeting")

        outcome = asyncio.run(classifier.classify_one(note))

        assert outcome.kind is OutcomeKind.CLASSIFIED
        assert outcome.decision == ClassificationDecision("Work")
        assert client.requests[0]["api_key"] == "test-key"
        assert client.requests[0]["max_output_tokens"] == 10

    def test_unclassified_is_skipped(self, classifier, vault_root):
        note = write_note(vault_root, "Notes/B.md", "Grocery list")

        outcome = asyncio.run(classifier.classify_one(note))

        assert outcome.kind is OutcomeKind.SKIPPED
        assert outcome.decision == UNCLASSIFIED

    def test_content_truncated(self, classifier, client, config, vault_root):
        config.classification.max_content_length = 20
        note = write_note(vault_root, "Notes/Long.md", "x" * 100)

        asyncio.run(classifier.classify_one(note))

        assert "x" * 20 + "..." in client.requests[0]["prompt"]
        assert "x" * 21 not in client.requests[0]["prompt"]

    def test_missing_credential(self, classifier, client, config, vault_root, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config.gemini.api_key = ""
        note = write_note(vault_root, "Notes/A.md", "meeting")

        outcome = asyncio.run(classifier.classify_one(note))

        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.error == MissingCredentialError().message
        assert client.requests == []

    def test_env_credential_fallback(self, classifier, client, config, vault_root, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        config.gemini.api_key = ""
        note = write_note(vault_root, "Notes/A.md", "meeting")

        asyncio.run(classifier.classify_one(note))

        assert client.requests[0]["api_key"] == "env-key"

    def test_model_failure_becomes_failed_outcome(self, classifier, client, vault_root):
        def fail(prompt):
            raise ModelTimeoutError(10000)

        client.responder = fail
        note = write_note(vault_root, "Notes/A.md", "meeting")

        outcome = asyncio.run(classifier.classify_one(note))

        assert outcome.kind is OutcomeKind.FAILED
        assert "timed out" in outcome.error

    def test_missing_file_becomes_failed_outcome(self, classifier):
        outcome = asyncio.run(classifier.classify_one(Note("Notes/ghost.md")))
        assert outcome.kind is OutcomeKind.FAILED


class TestClassifyGroup:
    """Tests for Classifier.classify_group."""

    def test_one_request_for_group(self, classifier, client, vault_root):
        notes = [
            write_note(vault_root, "Notes/A.md", "meeting"),
            write_note(vault_root, "Notes/B.md", "nothing"),
            write_note(vault_root, "Notes/C.md", "today's reflections"),
        ]

        result = asyncio.run(classifier.classify_group(notes))

        assert len(client.requests) == 1
        assert client.requests[0]["max_output_tokens"] == 1024
        assert result.failures == {}
        assert result.decisions == {
            "Notes/A.md": ClassificationDecision("Work"),
            "Notes/B.md": UNCLASSIFIED,
            "Notes/C.md": ClassificationDecision("Journal"),
        }

    def test_batch_content_limit(self, classifier, client, config, vault_root):
        config.classification.batch_max_content_length = 5
        notes = [write_note(vault_root, "Notes/A.md", "abcdefghij")]

        asyncio.run(classifier.classify_group(notes))

        assert "abcde..." in client.requests[0]["prompt"]

    def test_upstream_error_propagates(self, classifier, client, vault_root):
        def fail(prompt):
            raise UpstreamError(503, "overloaded")

        client.responder = fail
        notes = [write_note(vault_root, "Notes/A.md", "meeting")]

        with pytest.raises(UpstreamError):
            asyncio.run(classifier.classify_group(notes))

    def test_missing_answers_are_absent(self, classifier, client, vault_root):
        client.responder = lambda prompt: gemini_response('[{"id": "file_2", "folder": "Work"}]')
        notes = [
            write_note(vault_root, "Notes/A.md", "a"),
            write_note(vault_root, "Notes/B.md", "b"),
        ]

        result = asyncio.run(classifier.classify_group(notes))

        assert result.decisions == {"Notes/B.md": ClassificationDecision("Work")}

    def test_unreadable_note_left_out_of_prompt(self, classifier, client, vault_root):
        notes = [
            write_note(vault_root, "Notes/A.md", "meeting"),
            Note("Notes/Gone.md"),
            write_note(vault_root, "Notes/C.md", "today's reflections"),
        ]

        result = asyncio.run(classifier.classify_group(notes))

        assert len(client.requests) == 1
        assert "Gone" not in client.requests[0]["prompt"]
        assert list(result.failures) == ["Notes/Gone.md"]
        assert result.decisions == {
            "Notes/A.md": ClassificationDecision("Work"),
            "Notes/C.md": ClassificationDecision("Journal"),
        }

    def test_nothing_readable_sends_no_request(self, classifier, client):
        result = asyncio.run(classifier.classify_group([Note("Notes/x.md"), Note("Notes/y.md")]))

        assert client.requests == []
        assert result.decisions == {}
        assert set(result.failures) == {"Notes/x.md", "Notes/y.md"}


class TestClassifyIndividually:
    """Tests for chunked single-note classification."""

    @pytest.fixture
    def pauses(self, monkeypatch):
        recorded = []

        async def fake_pause(seconds):
            recorded.append(seconds)

        monkeypatch.setattr(classifier_module, "_pause", fake_pause)
        return recorded

    def test_chunks_and_pauses(self, client, vault, config, vault_root, pauses):
        config.classification = ClassificationOptions(chunk_size=5, chunk_delay_seconds=2.0)
        classifier = Classifier(client, vault, config)
        notes = [write_note(vault_root, f"Notes/n{i}.md", "meeting") for i in range(12)]
        progress = []

        outcomes = asyncio.run(classifier.classify_individually(
            notes, progress=lambda current, total, message: progress.append((current, total))
        ))

        assert [o.note for o in outcomes] == notes
        assert all(o.kind is OutcomeKind.CLASSIFIED for o in outcomes)
        assert len(client.requests) == 12
        # Three chunks, pauses only between them
        assert pauses == [2.0, 2.0]
        assert (0, 12) in progress and (10, 12) in progress

    def test_single_chunk_has_no_pause(self, classifier, vault_root, pauses):
        notes = [write_note(vault_root, f"Notes/n{i}.md", "meeting") for i in range(5)]

        asyncio.run(classifier.classify_individually(notes))

        assert pauses == []

    def test_chunk_runs_concurrently(self, vault, config, vault_root, pauses):
        in_flight = []
        peak = []

        class SlowClient(FakeModelClient):
            async def send(self, request, *, api_key, timeout_ms=10000):
                in_flight.append(1)
                peak.append(len(in_flight))
                await asyncio.sleep(0.2)
                in_flight.pop()
                return gemini_response("Work")

        classifier = Classifier(SlowClient(), vault, config)
        notes = [write_note(vault_root, f"Notes/n{i}.md", "x") for i in range(7)]

        asyncio.run(classifier.classify_individually(notes))

        assert max(peak) == 5

    def test_one_failure_does_not_stop_siblings(self, client, classifier, vault_root, pauses):
        notes = [
            write_note(vault_root, "Notes/A.md", "meeting"),
            Note("Notes/missing.md"),
            write_note(vault_root, "Notes/C.md", "reflections"),
        ]

        outcomes = asyncio.run(classifier.classify_individually(notes))

        assert [o.kind for o in outcomes] == [
            OutcomeKind.CLASSIFIED, OutcomeKind.FAILED, OutcomeKind.CLASSIFIED
        ]
