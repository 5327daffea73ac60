"""Ingestion progress tracking with callback-based listener notification.

Each ingestion run is identified by a ``run_id``.  :meth:`ProgressTracker.update`
stores the latest snapshot for the run and calls every listener registered
for it, in registration order.  A listener that raises is logged and
skipped; the remaining listeners still run and the pipeline is never
interrupted.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from docrag.models.pipeline import PipelinePhase

logger = structlog.get_logger(logger_name=__name__)

ProgressListener = Callable[[str, PipelinePhase, float, str], None]


@dataclass
class _RunStatus:
    """Internal snapshot of a single run's progress."""

    phase: PipelinePhase = PipelinePhase.CHUNKING
    progress: float = 0.0
    message: str = ""


class ProgressTracker:
    """Tracks and broadcasts ingestion progress via callbacks."""

    def __init__(self) -> None:
        self._statuses: dict[str, _RunStatus] = {}
        self._listeners: dict[str, list[ProgressListener]] = {}

    def update(
        self,
        run_id: str,
        phase: PipelinePhase,
        progress: float,
        message: str = "",
    ) -> None:
        """Record a progress update and notify the run's listeners.

        Parameters
        ----------
        run_id:
            The ingestion run to update.
        phase:
            The current pipeline phase.
        progress:
            Completion percentage, clamped to ``0.0 - 100.0``.
        message:
            Human-readable status message.
        """
        progress = max(0.0, min(100.0, progress))
        self._statuses[run_id] = _RunStatus(phase=phase, progress=progress, message=message)

        logger.debug(
            "progress_update",
            run_id=run_id,
            phase=phase.value,
            progress=round(progress, 1),
            message=message,
        )

        for callback in list(self._listeners.get(run_id, [])):
            try:
                callback(run_id, phase, progress, message)
            except Exception as exc:
                logger.warning(
                    "progress_listener_error",
                    run_id=run_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    def register_listener(self, run_id: str, callback: ProgressListener) -> None:
        """Register *callback* for updates on *run_id*; duplicates are ignored."""
        listeners = self._listeners.setdefault(run_id, [])
        if callback not in listeners:
            listeners.append(callback)
            logger.debug("listener_registered", run_id=run_id, total_listeners=len(listeners))

    def unregister_listener(self, run_id: str, callback: ProgressListener) -> None:
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)
            logger.debug("listener_unregistered", run_id=run_id, remaining_listeners=len(listeners))

    def get_status(self, run_id: str) -> dict:
        """Return the current phase and progress for a run.

        Returns
        -------
        dict
            Keys: ``phase`` (:class:`str`), ``progress`` (:class:`float`),
            ``message`` (:class:`str`).  Zeroed defaults when the run has
            not been tracked yet.
        """
        status = self._statuses.get(run_id) or _RunStatus()
        return {
            "phase": status.phase.value,
            "progress": status.progress,
            "message": status.message,
        }

    def clear(self, run_id: str) -> None:
        """Forget the snapshot and listeners of a finished run."""
        self._statuses.pop(run_id, None)
        self._listeners.pop(run_id, None)
