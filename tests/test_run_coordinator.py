"""
Unit tests for the run coordinator.
"""

import asyncio

import pytest

from sort_inbox.actions.file_operations import VaultFileOperations
from sort_inbox.actions.history_tracker import HistoryTracker
from sort_inbox.classification.classifier import Classifier
from sort_inbox.classification.models import Note, OutcomeKind
from sort_inbox.monitoring.run_coordinator import RunCoordinator, RunState
from sort_inbox.utils.exceptions import MoveFailureError, RunInProgressError, UpstreamError

from conftest import FakeModelClient, gemini_response, keyword_responder, write_note

RULES = {"meeting": "Work", "today's reflections": "Journal"}


class FailingMoveVault(VaultFileOperations):
    """Vault whose move fails for selected notes."""

    def __init__(self, root, fail_paths):
        super().__init__(root)
        self.fail_paths = set(fail_paths)

    def rename_or_move(self, note, new_path):
        if note.path in self.fail_paths:
            raise MoveFailureError("disk full", file_path=note.path, destination=new_path)
        return super().rename_or_move(note, new_path)


class GatedClient(FakeModelClient):
    """Client that blocks every request until ``gate`` is set."""

    def __init__(self, responder=None):
        super().__init__(responder)
        self.gate = None

    async def send(self, request, *, api_key, timeout_ms=10000):
        await self.gate.wait()
        return await super().send(request, api_key=api_key, timeout_ms=timeout_ms)


def make_coordinator(vault, config, client=None, notifier=None, history=None):
    client = client or FakeModelClient(keyword_responder(RULES))
    classifier = Classifier(client, vault, config)
    return RunCoordinator(classifier, vault, config, notifier=notifier, history=history)


@pytest.fixture
def scenario_notes(vault_root):
    """The Notes/Work/Journal end-to-end scenario."""
    return [
        write_note(vault_root, "Notes/A.md", "Action items from the meeting with Sam"),
        write_note(vault_root, "Notes/B.md", "A list of colours"),
        write_note(vault_root, "Notes/C.md", "Some of today's reflections"),
    ]


class TestEndToEnd:
    """Full runs over the scenario notes."""

    def _assert_scenario(self, summary, vault_root):
        assert (summary.total, summary.classified, summary.skipped, summary.failed) == (3, 2, 1, 0)
        assert summary.folder_counts == {"Work": 1, "Journal": 1}
        assert (vault_root / "Notes" / "Work" / "A.md").is_file()
        assert (vault_root / "Notes" / "Journal" / "C.md").is_file()
        assert (vault_root / "Notes" / "B.md").is_file()
        assert not (vault_root / "Notes" / "A.md").exists()

    def test_batch_path(self, vault, config, vault_root, scenario_notes):
        client = FakeModelClient(keyword_responder(RULES))
        coordinator = make_coordinator(vault, config, client)

        summary = asyncio.run(coordinator.start_run(scenario_notes))

        self._assert_scenario(summary, vault_root)
        assert len(client.requests) == 1

    def test_individual_path(self, vault, config, vault_root, scenario_notes):
        config.classification.high_accuracy_mode = True
        client = FakeModelClient(keyword_responder(RULES))
        coordinator = make_coordinator(vault, config, client)

        summary = asyncio.run(coordinator.start_run(scenario_notes))

        self._assert_scenario(summary, vault_root)
        assert len(client.requests) == 3

    def test_summary_is_final_and_state_idle(self, vault, config, scenario_notes):
        coordinator = make_coordinator(vault, config)

        summary = asyncio.run(coordinator.start_run(scenario_notes))

        assert summary.is_final
        assert summary.duration_ms >= 0
        assert coordinator.state is RunState.IDLE
        assert coordinator.current_summary is None
        assert coordinator.last_summary is summary


class TestPartialFailure:
    """Per-note and per-group failures."""

    def test_one_failed_move(self, config, vault_root):
        notes = [
            write_note(vault_root, "Notes/A.md", "meeting one"),
            write_note(vault_root, "Notes/B.md", "meeting two"),
            write_note(vault_root, "Notes/C.md", "meeting three"),
        ]
        vault = FailingMoveVault(vault_root, {"Notes/B.md"})
        coordinator = make_coordinator(vault, config)

        summary = asyncio.run(coordinator.start_run(notes))

        assert (summary.total, summary.classified, summary.skipped, summary.failed) == (3, 2, 0, 1)
        assert (vault_root / "Notes" / "B.md").is_file()
        assert not (vault_root / "Notes" / "Work" / "B.md").exists()

    def test_unreadable_note_does_not_fail_its_group(self, vault, config, vault_root):
        notes = [
            write_note(vault_root, "Notes/A.md", "meeting one"),
            write_note(vault_root, "Notes/B.md", "meeting two"),
            Note("Notes/Gone.md"),
        ]
        coordinator = make_coordinator(vault, config)

        summary = asyncio.run(coordinator.start_run(notes))

        assert (summary.total, summary.classified, summary.skipped, summary.failed) == (3, 2, 0, 1)
        assert (vault_root / "Notes" / "Work" / "A.md").is_file()
        assert (vault_root / "Notes" / "Work" / "B.md").is_file()

    def test_failed_group_does_not_stop_other_groups(self, vault, config, vault_root):
        config.classification.batch_size = 2

        def respond(prompt):
            if "explode" in prompt:
                raise UpstreamError(500, "boom")
            return keyword_responder(RULES)(prompt)

        notes = [
            write_note(vault_root, "Notes/n1.md", "explode"),
            write_note(vault_root, "Notes/n2.md", "meeting"),
            write_note(vault_root, "Notes/n3.md", "meeting"),
            write_note(vault_root, "Notes/n4.md", "meeting"),
        ]
        coordinator = make_coordinator(vault, config, FakeModelClient(respond))

        summary = asyncio.run(coordinator.start_run(notes))

        assert (summary.classified, summary.skipped, summary.failed) == (2, 0, 2)
        assert (vault_root / "Notes" / "n1.md").is_file()
        assert (vault_root / "Notes" / "Work" / "n4.md").is_file()

    def test_notes_missing_from_batch_answer_are_skipped(self, vault, config, vault_root, scenario_notes):
        client = FakeModelClient(lambda prompt: gemini_response('[{"id": "file_1", "folder": "Work"}]'))
        coordinator = make_coordinator(vault, config, client)

        summary = asyncio.run(coordinator.start_run(scenario_notes))

        assert (summary.classified, summary.skipped, summary.failed) == (1, 2, 0)

    def test_run_level_error_counts_remaining_as_failed(self, vault, config, scenario_notes, notifier):
        coordinator = make_coordinator(vault, config, notifier=notifier)

        async def explode(notes, progress=None):
            raise RuntimeError("unexpected")

        config.classification.high_accuracy_mode = True
        coordinator.classifier.classify_individually = explode

        summary = asyncio.run(coordinator.start_run(scenario_notes))

        assert (summary.total, summary.failed) == (3, 3)
        assert summary.is_final
        assert coordinator.state is RunState.IDLE
        assert any(title == "Sorting failed" for title, _ in notifier.messages)


class TestSingleFlight:
    """Only one bulk run at a time."""

    def test_second_run_rejected(self, vault, config, vault_root, notifier):
        first = [write_note(vault_root, "Notes/A.md", "meeting")]
        second = [write_note(vault_root, "Notes/B.md", "meeting")]
        client = GatedClient(keyword_responder(RULES))
        coordinator = make_coordinator(vault, config, client, notifier=notifier)

        async def main():
            client.gate = asyncio.Event()
            task = asyncio.create_task(coordinator.start_run(first))
            while not coordinator.is_running:
                await asyncio.sleep(0)

            open_summary = coordinator.current_summary
            with pytest.raises(RunInProgressError):
                await coordinator.start_run(second)

            assert coordinator.current_summary is open_summary
            assert open_summary.total == 1
            assert open_summary.recorded == 0

            client.gate.set()
            return await task

        summary = asyncio.run(main())

        assert summary.classified == 1
        assert (vault_root / "Notes" / "B.md").is_file()
        assert any("already in progress" in message for _, message in notifier.messages)
        started = [message for _, message in notifier.messages if message.startswith("Sorting notes")]
        assert len(started) == 1

    def test_new_run_allowed_after_previous_finished(self, vault, config, vault_root):
        coordinator = make_coordinator(vault, config)
        asyncio.run(coordinator.start_run([write_note(vault_root, "Notes/A.md", "meeting")]))

        summary = asyncio.run(coordinator.start_run([write_note(vault_root, "Notes/B.md", "x")]))

        assert summary.skipped == 1

    def test_auto_classification_skips_note_in_active_run(self, vault, config, vault_root):
        note = write_note(vault_root, "Notes/A.md", "meeting")
        client = GatedClient(keyword_responder(RULES))
        coordinator = make_coordinator(vault, config, client)

        async def main():
            client.gate = asyncio.Event()
            task = asyncio.create_task(coordinator.start_run([note]))
            while not coordinator.is_running:
                await asyncio.sleep(0)

            assert coordinator.is_busy(note)
            assert await coordinator.classify_single(note) is None

            client.gate.set()
            return await task

        summary = asyncio.run(main())
        assert summary.classified == 1

    def test_bulk_run_skips_note_being_auto_classified(self, vault, config, vault_root):
        busy = write_note(vault_root, "Notes/A.md", "meeting")
        other = write_note(vault_root, "Notes/B.md", "meeting")
        client = GatedClient(keyword_responder(RULES))
        coordinator = make_coordinator(vault, config, client)

        async def main():
            client.gate = asyncio.Event()
            single = asyncio.create_task(coordinator.classify_single(busy))
            while not coordinator.is_busy(busy):
                await asyncio.sleep(0)

            run = asyncio.create_task(coordinator.start_run([busy, other]))
            await asyncio.sleep(0)
            client.gate.set()
            return await single, await run

        outcome, summary = asyncio.run(main())

        assert outcome.kind is OutcomeKind.CLASSIFIED
        assert summary.total == 1
        assert summary.classified == 1


class TestClassifySingle:
    """Auto-classification of one note."""

    def test_moves_and_notifies(self, vault, config, vault_root, notifier):
        note = write_note(vault_root, "Notes/A.md", "meeting")
        coordinator = make_coordinator(vault, config, notifier=notifier)

        outcome = asyncio.run(coordinator.classify_single(note))

        assert outcome.kind is OutcomeKind.CLASSIFIED
        assert outcome.new_path == "Notes/Work/A.md"
        titles = [title for title, _ in notifier.messages]
        assert "Note sorted" in titles

    def test_unclassified_note_stays(self, vault, config, vault_root, notifier):
        note = write_note(vault_root, "Notes/A.md", "nothing useful")
        coordinator = make_coordinator(vault, config, notifier=notifier)

        outcome = asyncio.run(coordinator.classify_single(note))

        assert outcome.kind is OutcomeKind.SKIPPED
        assert (vault_root / "Notes" / "A.md").is_file()
        assert any("No matching folder" in message for _, message in notifier.messages)

    def test_name_collision_gets_suffix(self, vault, config, vault_root):
        write_note(vault_root, "Notes/Work/A.md", "older note")
        note = write_note(vault_root, "Notes/A.md", "meeting")
        coordinator = make_coordinator(vault, config)

        outcome = asyncio.run(coordinator.classify_single(note))

        assert outcome.new_path == "Notes/Work/A_1.md"
        assert (vault_root / "Notes" / "Work" / "A.md").read_text() == "older note"


class TestReporting:
    """History and summary reporting."""

    def test_history_recorded(self, vault, config, vault_root, scenario_notes, tmp_path):
        history = HistoryTracker(tmp_path / "history.json")
        coordinator = make_coordinator(vault, config, history=history)

        asyncio.run(coordinator.start_run(scenario_notes))

        stats = history.get_stats()
        assert stats["total_entries"] == 3
        assert stats["by_status"] == {"classified": 2, "skipped": 1}

    def test_history_off_when_log_results_disabled(self, vault, config, scenario_notes, tmp_path):
        config.classification.log_results = False
        history = HistoryTracker(tmp_path / "history.json")
        coordinator = make_coordinator(vault, config, history=history)

        asyncio.run(coordinator.start_run(scenario_notes))

        assert history.get_recent() == []

    def test_summary_lists_notes_left_in_place(self, vault, config, scenario_notes, notifier):
        config.classification.skip_unclassified = False
        coordinator = make_coordinator(vault, config, notifier=notifier)

        asyncio.run(coordinator.start_run(scenario_notes))

        summary_message = notifier.messages[-1][1]
        assert "2 of 3 notes classified" in summary_message
        assert "Skipped: 1 notes" in summary_message
        assert "Left in place: Notes/B.md" in summary_message

    def test_summary_quiet_about_skipped_by_default(self, vault, config, scenario_notes, notifier):
        coordinator = make_coordinator(vault, config, notifier=notifier)

        asyncio.run(coordinator.start_run(scenario_notes))

        assert "Left in place" not in notifier.messages[-1][1]
