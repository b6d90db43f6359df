"""Timer-driven simulation stepper.

States::

    IDLE ──start──> RUNNING ──pause──> PAUSED ──start──> RUNNING
                       │                  │
                       ├──stop──> STOPPED <┘
                       └──(bound reached)──> COMPLETED

``reset`` returns any non-running state to IDLE. A run lasts
``len(task_configs) * STEPS_PER_TASK`` ticks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from mdksys.model.project import ProjectConfig

logger = logging.getLogger(__name__)

STEPS_PER_TASK = 5


class SimulationState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"


class SimulationSpeed(int, Enum):
    """Tick interval in milliseconds."""

    FAST = 500
    NORMAL = 1000
    SLOW = 2000
    DEBUG = 5000

    @property
    def seconds(self) -> float:
        return self.value / 1000


class SimulationError(Exception):
    """An operation is not allowed in the current simulation state."""


class SimulationStepper:
    """Walks the current project one step per timer tick.

    Parameters
    ----------
    project_source : callable
        Returns the project being simulated. Read on every tick, so
        edits to the project change the bound of a running simulation.
    speed : SimulationSpeed
        Tick cadence (default NORMAL, one second).
    clock : callable
        Wall clock used for log timestamps.
    """

    def __init__(
        self,
        project_source: Callable[[], ProjectConfig],
        *,
        speed: SimulationSpeed = SimulationSpeed.NORMAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._project_source = project_source
        self._speed = speed
        self._clock = clock
        self._state = SimulationState.IDLE
        self._current_step = 0
        self._log: list[str] = []
        self._timer: asyncio.TimerHandle | None = None

    # -----------------------------------------------------------------------
    # Read-only view
    # -----------------------------------------------------------------------

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SimulationState.RUNNING

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def total_steps(self) -> int:
        return len(self._project_source().task_configs) * STEPS_PER_TASK

    @property
    def speed(self) -> SimulationSpeed:
        return self._speed

    @property
    def log(self) -> list[str]:
        return list(self._log)

    def statistics(self) -> dict[str, int]:
        """Entity counts of the simulated project."""
        project = self._project_source()
        return {
            "io_configs": len(project.io_configs),
            "axis_configs": len(project.axis_configs),
            "station_configs": len(project.station_configs),
            "task_configs": len(project.task_configs),
        }

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """Begin a run, or resume a paused one.

        Resuming keeps the step counter and log; any other start begins
        from step 0 with an empty log. Needs a running event loop.
        """
        if self._state == SimulationState.RUNNING:
            return
        if self._state == SimulationState.PAUSED:
            self._enter(SimulationState.RUNNING)
            self._append("Simulation resumed")
        else:
            self._current_step = 0
            self._log = []
            self._enter(SimulationState.RUNNING)
            self._append("Simulation started")
            if self.total_steps == 0:
                self._complete()
                return
        self._arm()

    def pause(self) -> None:
        if self._state != SimulationState.RUNNING:
            return
        self._disarm()
        self._enter(SimulationState.PAUSED)
        self._append("Simulation paused")

    def stop(self) -> None:
        self._disarm()
        self._current_step = 0
        self._enter(SimulationState.STOPPED)
        self._append("Simulation stopped")

    def reset(self) -> None:
        if self._state == SimulationState.RUNNING:
            raise SimulationError("Cannot reset a running simulation; stop or pause it first")
        self._disarm()
        self._current_step = 0
        self._log = []
        self._enter(SimulationState.IDLE)

    def set_speed(self, speed: SimulationSpeed) -> None:
        if self._state == SimulationState.RUNNING:
            raise SimulationError("Cannot change speed while the simulation is running")
        self._speed = SimulationSpeed(speed)

    def dispose(self) -> None:
        """Cancel the timer for good; the owning view is going away."""
        self._disarm()
        if self._state == SimulationState.RUNNING:
            self._enter(SimulationState.STOPPED)

    def tick(self) -> None:
        """Advance one step. Called by the timer; callable directly in tests."""
        if self._state != SimulationState.RUNNING:
            return
        self._current_step += 1
        self._append(f"Executing step {self._current_step}")
        if self._current_step >= self.total_steps:
            self._disarm()
            self._complete()

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _complete(self) -> None:
        self._enter(SimulationState.COMPLETED)
        self._append("Simulation completed")

    def _enter(self, state: SimulationState) -> None:
        logger.debug("Simulation %s -> %s", self._state.value, state.value)
        self._state = state

    def _append(self, message: str) -> None:
        stamp = self._clock().strftime("%H:%M:%S")
        self._log.append(f"[{stamp}] {message}")

    def _arm(self) -> None:
        self._disarm()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._speed.seconds, self._on_timer)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self.tick()
        if self._state == SimulationState.RUNNING:
            self._arm()
