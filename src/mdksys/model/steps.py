"""Task step nodes.

A step is a tagged union keyed on ``type``. Each known tag carries a
typed parameter shape; every shape also keeps unknown keys so editors
can stash extra settings without a schema change. Tags outside
:class:`StepType` parse into :class:`CustomStep` with a plain mapping.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Discriminator, Field, Tag, TypeAdapter

from .base import ConfigModel, generate_id


class StepType(str, Enum):
    MOVE = "MOVE"
    IO = "IO"
    WAIT = "WAIT"
    CONDITION = "CONDITION"


# ---------------------------------------------------------------------------
# Parameter shapes
# ---------------------------------------------------------------------------

class StepParameters(ConfigModel):
    """Base for the per-kind parameter shapes.

    Only the keys are typed. Values are kept exactly as given: an IO value
    may be a bool, an analog reading or a string, and a duration may be
    fractional, so nothing is coerced or rejected here.
    """

    model_config = ConfigDict(extra="allow")

    def to_mapping(self) -> dict[str, Any]:
        """Parameters as a plain JSON-able dict, unset keys omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MoveParameters(StepParameters):
    axis_id: str | None = None
    position: Any = None
    speed: Any = None


class IOParameters(StepParameters):
    io_id: str | None = None
    value: Any = None


class WaitParameters(StepParameters):
    duration_ms: Any = None


class ConditionParameters(StepParameters):
    """Block until *io_id* reads *expected*, or give up after *timeout_ms*."""

    io_id: str | None = None
    expected: Any = None
    timeout_ms: Any = None


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

class MoveStep(ConfigModel):
    id: str = Field(default_factory=generate_id)
    type: Literal["MOVE"] = "MOVE"
    parameters: MoveParameters = MoveParameters()
    description: str = ""


class IOStep(ConfigModel):
    id: str = Field(default_factory=generate_id)
    type: Literal["IO"] = "IO"
    parameters: IOParameters = IOParameters()
    description: str = ""


class WaitStep(ConfigModel):
    id: str = Field(default_factory=generate_id)
    type: Literal["WAIT"] = "WAIT"
    parameters: WaitParameters = WaitParameters()
    description: str = ""


class ConditionStep(ConfigModel):
    id: str = Field(default_factory=generate_id)
    type: Literal["CONDITION"] = "CONDITION"
    parameters: ConditionParameters = ConditionParameters()
    description: str = ""


class CustomStep(ConfigModel):
    """A step whose tag this version does not know about."""

    id: str = Field(default_factory=generate_id)
    type: str
    parameters: dict[str, Any] = {}
    description: str = ""

    def parameter_mapping(self) -> dict[str, Any]:
        return dict(self.parameters)


_CUSTOM_TAG = "CUSTOM"
_KNOWN_TAGS = frozenset(t.value for t in StepType)


def _step_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    if isinstance(kind, StepType):
        kind = kind.value
    if isinstance(kind, str) and kind in _KNOWN_TAGS:
        if isinstance(value, CustomStep):
            # CustomStep instances keep their own class
            return _CUSTOM_TAG
        return kind
    return _CUSTOM_TAG


TaskStep = Annotated[
    Union[
        Annotated[MoveStep, Tag("MOVE")],
        Annotated[IOStep, Tag("IO")],
        Annotated[WaitStep, Tag("WAIT")],
        Annotated[ConditionStep, Tag("CONDITION")],
        Annotated[CustomStep, Tag(_CUSTOM_TAG)],
    ],
    Discriminator(_step_tag),
]

_STEP_ADAPTER: TypeAdapter[TaskStep] = TypeAdapter(TaskStep)


def make_step(
    type: StepType | str,
    parameters: dict[str, Any] | None = None,
    *,
    id: str | None = None,
    description: str = "",
) -> TaskStep:
    """Build the right step node for *type* from a raw parameter mapping."""
    if isinstance(type, StepType):
        type = type.value
    data: dict[str, Any] = {
        "type": type,
        "parameters": parameters or {},
        "description": description,
    }
    if id is not None:
        data["id"] = id
    return _STEP_ADAPTER.validate_python(data)


def step_parameters(step: TaskStep) -> dict[str, Any]:
    """Plain parameter mapping for any step kind."""
    if isinstance(step, CustomStep):
        return step.parameter_mapping()
    return step.parameters.to_mapping()
