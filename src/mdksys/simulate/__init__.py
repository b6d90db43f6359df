"""mdksys simulator: timer-driven stepping over the open project.

Entry point::

    from mdksys.simulate import simulate

    sim = simulate(store, speed=SimulationSpeed.FAST)
    sim.start()
    ...
    sim.dispose()
"""

from __future__ import annotations

from typing import Any

from mdksys.model.project import ProjectConfig

from ._stepper import (
    STEPS_PER_TASK,
    SimulationError,
    SimulationSpeed,
    SimulationState,
    SimulationStepper,
)


def simulate(
    target: Any,
    *,
    speed: SimulationSpeed | str = SimulationSpeed.NORMAL,
) -> SimulationStepper:
    """Create a stepper for a project.

    Parameters
    ----------
    target
        A ``ProjectStore`` (the stepper follows whatever project the
        store holds), a ``ProjectConfig``, or a zero-argument callable
        returning one.
    speed
        Tick cadence, as a member or its name (``"FAST"``, the form
        :class:`~mdksys.settings.Settings` carries).
    """
    if isinstance(speed, str):
        speed = SimulationSpeed[speed.upper()]
    return SimulationStepper(_resolve_source(target), speed=speed)


def _resolve_source(target: Any):
    if isinstance(target, ProjectConfig):
        return lambda: target
    if isinstance(getattr(target, "project", None), ProjectConfig):
        return lambda: target.project
    if callable(target):
        return target
    raise TypeError(
        f"simulate() expects a ProjectStore, ProjectConfig or callable, "
        f"got {type(target).__name__}"
    )


__all__ = [
    "STEPS_PER_TASK",
    "SimulationError",
    "SimulationSpeed",
    "SimulationState",
    "SimulationStepper",
    "simulate",
]
