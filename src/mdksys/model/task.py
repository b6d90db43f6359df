"""Task configuration: an ordered sequence of steps bound to a station."""

from __future__ import annotations

from .base import ConfigModel
from .steps import TaskStep


class TaskConfig(ConfigModel):
    """A task the machine executes.

    *station_id* is a weak reference to a station; an empty string means
    the task is not assigned. The order of *sequence* is the execution
    order and is preserved through storage.
    """

    id: str
    name: str
    station_id: str = ""
    sequence: list[TaskStep] = []
    priority: int = 0
    enabled: bool = True
