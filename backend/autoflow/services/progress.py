# autoflow/services/progress.py
import asyncio
import math
import time
import uuid
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from autoflow.core.errors import RunCancelledError
from autoflow.models.state import ProgressState, ProgressStep, StepStatus

logger = logging.getLogger("progress")


def estimate_seconds_remaining(elapsed: float, percentage: float) -> Optional[int]:
    """
    Linear extrapolation: total = elapsed * 100 / pct, remaining = total - elapsed.
    None while there is nothing to extrapolate from, 0 once done.
    """
    if percentage >= 100:
        return 0
    if percentage <= 0:
        return None
    total = elapsed * 100 / percentage
    return max(0, math.ceil(total - elapsed))


def format_time_remaining(seconds: Optional[int]) -> str:
    if seconds is None or seconds <= 0:
        return ""
    if seconds < 60:
        return f"~{seconds}s remaining"
    return f"~{seconds // 60}m {seconds % 60}s remaining"


class ProgressTracker:
    """
    Sole writer of a run's ProgressState.

    Steps are only appended or have their status/message updated in place;
    percentage never goes down.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.state = ProgressState(start_time=clock())
        self.artifact_estimate: Optional[int] = None

    def append_step(self, message: str, status: StepStatus = "in_progress") -> str:
        step = ProgressStep(
            id=uuid.uuid4().hex,
            message=message,
            status=status,
            timestamp=datetime.now(timezone.utc),
        )
        self.state.steps.append(step)
        logger.info("[%s] %s", status, message)
        return step.id

    def update_step(self, step_id: str, status: StepStatus, message: Optional[str] = None) -> None:
        for step in self.state.steps:
            if step.id == step_id:
                step.status = status
                if message:
                    step.message = message
                logger.info("[%s] %s", status, step.message)
                return
        logger.warning("Unknown progress step %s", step_id)

    def update_progress(self, percentage: float, artifact_estimate: Optional[int] = None) -> None:
        if artifact_estimate is not None:
            self.artifact_estimate = artifact_estimate

        percentage = min(100.0, float(percentage))
        if percentage < self.state.percentage:
            logger.debug("Ignoring progress regression %.1f -> %.1f", self.state.percentage, percentage)
            percentage = self.state.percentage
        self.state.percentage = percentage

        if percentage >= 100:
            self.state.estimated_seconds_remaining = 0
        elif self.artifact_estimate:
            elapsed = self._clock() - (self.state.start_time or 0)
            self.state.estimated_seconds_remaining = estimate_seconds_remaining(elapsed, percentage)

    def fail(self, message: str) -> None:
        self.append_step(message, "error")
        self.state.status = "failed"

    def abort(self, message: str = "Run cancelled") -> None:
        self.append_step(message, "error")
        self.state.status = "aborted"

    def complete(self) -> None:
        self.update_progress(100)
        self.state.status = "completed"


class CancellationToken:
    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError("Run cancelled")


class RunRegistry:
    """Live runs by id, so another request can read progress or cancel."""

    def __init__(self):
        self._runs: Dict[str, tuple] = {}

    def register(self, run_id: str, tracker: ProgressTracker, token: CancellationToken) -> None:
        self._runs[run_id] = (tracker, token)

    def unregister(self, run_id: str) -> None:
        self._runs.pop(run_id, None)

    def progress(self, run_id: str) -> Optional[ProgressState]:
        entry = self._runs.get(run_id)
        return entry[0].state if entry else None

    def cancel(self, run_id: str) -> bool:
        entry = self._runs.get(run_id)
        if not entry:
            return False
        entry[1].cancel()
        return True

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs


run_registry = RunRegistry()
