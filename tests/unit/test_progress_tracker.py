"""Unit tests for ProgressTracker."""

from __future__ import annotations

import pytest

from docrag.models.pipeline import PipelinePhase
from docrag.pipeline.progress_tracker import ProgressTracker


class TestProgressTracker:
    @pytest.fixture()
    def tracker(self) -> ProgressTracker:
        return ProgressTracker()

    def test_update_stores_status(self, tracker: ProgressTracker) -> None:
        tracker.update("r1", PipelinePhase.EMBEDDING, 45.0, "Generating embeddings")
        status = tracker.get_status("r1")
        assert status["phase"] == "EMBEDDING"
        assert status["progress"] == 45.0
        assert status["message"] == "Generating embeddings"

    def test_get_status_unknown_run(self, tracker: ProgressTracker) -> None:
        status = tracker.get_status("unknown")
        assert status == {"phase": "CHUNKING", "progress": 0.0, "message": ""}

    def test_progress_clamped_to_0_100(self, tracker: ProgressTracker) -> None:
        tracker.update("r1", PipelinePhase.CHUNKING, -10.0, "Negative")
        assert tracker.get_status("r1")["progress"] == 0.0

        tracker.update("r1", PipelinePhase.UPLOADING, 150.0, "Over")
        assert tracker.get_status("r1")["progress"] == 100.0

    def test_listeners_called_in_order(self, tracker: ProgressTracker) -> None:
        calls: list[str] = []
        tracker.register_listener("r1", lambda *args: calls.append("first"))
        tracker.register_listener("r1", lambda *args: calls.append("second"))

        tracker.update("r1", PipelinePhase.CHUNKING, 10.0)

        assert calls == ["first", "second"]

    def test_listener_receives_arguments(self, tracker: ProgressTracker) -> None:
        received: list[tuple] = []

        def callback(run_id: str, phase: PipelinePhase, progress: float, message: str) -> None:
            received.append((run_id, phase, progress, message))

        tracker.register_listener("r1", callback)
        tracker.update("r1", PipelinePhase.UPLOADING, 90.0, "Uploading")

        assert received == [("r1", PipelinePhase.UPLOADING, 90.0, "Uploading")]

    def test_listeners_scoped_to_run(self, tracker: ProgressTracker) -> None:
        received: list[str] = []
        tracker.register_listener("r1", lambda run_id, *rest: received.append(run_id))

        tracker.update("r2", PipelinePhase.CHUNKING, 5.0)

        assert received == []

    def test_failing_listener_does_not_block_others(self, tracker: ProgressTracker) -> None:
        received: list[float] = []

        def broken(*args) -> None:
            raise RuntimeError("listener bug")

        tracker.register_listener("r1", broken)
        tracker.register_listener("r1", lambda run_id, phase, progress, message: received.append(progress))

        tracker.update("r1", PipelinePhase.EMBEDDING, 50.0)

        assert received == [50.0]
        assert tracker.get_status("r1")["progress"] == 50.0

    def test_duplicate_registration_ignored(self, tracker: ProgressTracker) -> None:
        calls: list[int] = []

        def callback(*args) -> None:
            calls.append(1)

        tracker.register_listener("r1", callback)
        tracker.register_listener("r1", callback)
        tracker.update("r1", PipelinePhase.CHUNKING, 1.0)

        assert calls == [1]

    def test_unregister_listener(self, tracker: ProgressTracker) -> None:
        calls: list[int] = []

        def callback(*args) -> None:
            calls.append(1)

        tracker.register_listener("r1", callback)
        tracker.unregister_listener("r1", callback)
        tracker.unregister_listener("r1", callback)
        tracker.update("r1", PipelinePhase.CHUNKING, 1.0)

        assert calls == []

    def test_clear(self, tracker: ProgressTracker) -> None:
        calls: list[int] = []
        tracker.register_listener("r1", lambda *args: calls.append(1))
        tracker.update("r1", PipelinePhase.COMPLETE, 100.0, "Done")

        tracker.clear("r1")
        tracker.update("r1", PipelinePhase.CHUNKING, 0.0)

        assert calls == [1]
        assert tracker.get_status("r1")["phase"] == "CHUNKING"
