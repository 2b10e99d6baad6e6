"""
Folio - Analysis Controller
Cooperative pause/resume/stop for a running analysis.

The pipeline calls checkpoint() before every stage. That is the only place a
run can be suspended or cancelled; a stage that has started always runs to
completion.

    running --pause()--> paused --resume()--> running
       |                    |
       +------stop()--------+----> stopped (terminal until reset())
"""

import threading
from enum import Enum
from typing import Optional

from analysis.errors import AnalysisStoppedError


class ControlState(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class AnalysisController:
    """Thread-safe run state shared between the pipeline and whoever drives it (CLI, signal handler)."""

    def __init__(self):
        self._state = ControlState.RUNNING
        self._condition = threading.Condition()

    @property
    def state(self) -> ControlState:
        with self._condition:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == ControlState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self.state == ControlState.PAUSED

    @property
    def is_stopped(self) -> bool:
        return self.state == ControlState.STOPPED

    def pause(self) -> bool:
        """Pause before the next stage. Only valid while running."""
        with self._condition:
            if self._state != ControlState.RUNNING:
                return False
            self._state = ControlState.PAUSED
            return True

    def resume(self) -> bool:
        """Resume a paused run, waking the waiting pipeline. Only valid while paused."""
        with self._condition:
            if self._state != ControlState.PAUSED:
                return False
            self._state = ControlState.RUNNING
            self._condition.notify_all()
            return True

    def stop(self) -> bool:
        """Stop from any state. A pipeline waiting on a pause wakes up and sees the stop."""
        with self._condition:
            if self._state == ControlState.STOPPED:
                return False
            self._state = ControlState.STOPPED
            self._condition.notify_all()
            return True

    def reset(self) -> None:
        """Return to running so the controller can gate a new run."""
        with self._condition:
            self._state = ControlState.RUNNING
            self._condition.notify_all()

    def checkpoint(self, timeout: Optional[float] = None) -> None:
        """
        Stage boundary gate.

        Raises AnalysisStoppedError immediately if stopped, blocks while
        paused, and checks for a stop again after waking.

        Args:
            timeout: Give up waiting after this many seconds (None waits
                indefinitely). On timeout the run is still paused and this
                raises TimeoutError.
        """
        with self._condition:
            if self._state == ControlState.STOPPED:
                raise AnalysisStoppedError()

            woke = self._condition.wait_for(
                lambda: self._state != ControlState.PAUSED,
                timeout=timeout
            )
            if not woke:
                raise TimeoutError("Analysis still paused")

            if self._state == ControlState.STOPPED:
                raise AnalysisStoppedError()
