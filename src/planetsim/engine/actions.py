# src/planetsim/engine/actions.py
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ActionKind(str, Enum):
    EXIT = "exit"
    REFRESH = "refresh"
    SET_ASPECT = "set_aspect"
    CAM_ROTATE_CW = "cam_rotate_cw"  # "left"
    CAM_ROTATE_CCW = "cam_rotate_ccw"  # "right"
    CAM_ROTATE_N = "cam_rotate_n"
    CAM_ROTATE_S = "cam_rotate_s"
    SHOOT = "shoot"


class Action(BaseModel):
    """
    One discrete domain action produced by the input layer.

    Attributes:
        kind: What happened.
        active: Pressed (True) / released (False) for the camera and shoot
            toggles. Ignored otherwise.
        aspect: New viewport aspect for SET_ASPECT.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ActionKind
    active: bool = False
    aspect: float | None = Field(None, gt=0.0)

    @model_validator(mode="after")
    def check_aspect(self) -> Action:
        if self.kind is ActionKind.SET_ASPECT and self.aspect is None:
            raise ValueError("SET_ASPECT requires an aspect")
        return self

    @classmethod
    def exit(cls) -> Action:
        return cls(kind=ActionKind.EXIT)

    @classmethod
    def refresh(cls) -> Action:
        return cls(kind=ActionKind.REFRESH)

    @classmethod
    def set_aspect(cls, aspect: float) -> Action:
        return cls(kind=ActionKind.SET_ASPECT, aspect=aspect)

    @classmethod
    def shoot(cls, active: bool) -> Action:
        return cls(kind=ActionKind.SHOOT, active=active)


class ProgramCommand(str, Enum):
    EXIT = "exit"
    REFRESH = "refresh"


class AspectTarget(Protocol):
    def set_aspect(self, aspect: float) -> None: ...


@dataclass
class CameraControl:
    """Held rotation keys. Opposite directions cancel out."""

    cw: bool = False
    ccw: bool = False
    n: bool = False
    s: bool = False

    def rotation_intent(self) -> tuple[int, int]:
        """(horizontal, vertical), each in {-1, 0, 1}; ccw and north are positive."""
        return int(self.ccw) - int(self.cw), int(self.n) - int(self.s)


def process_global_events(
    camera: AspectTarget, actions: Iterable[Action]
) -> ProgramCommand | None:
    """
    Apply window-level actions and pick the program command, if any.

    Aspect changes go straight to the camera. When several commands occur
    in one frame the last one wins, except that EXIT is never overridden.
    """
    command = None
    for action in actions:
        if action.kind is ActionKind.EXIT:
            command = ProgramCommand.EXIT
        elif action.kind is ActionKind.SET_ASPECT and action.aspect is not None:
            camera.set_aspect(action.aspect)
        elif action.kind is ActionKind.REFRESH and command is not ProgramCommand.EXIT:
            command = ProgramCommand.REFRESH
    return command


_CAMERA_FLAGS = {
    ActionKind.CAM_ROTATE_CW: "cw",
    ActionKind.CAM_ROTATE_CCW: "ccw",
    ActionKind.CAM_ROTATE_N: "n",
    ActionKind.CAM_ROTATE_S: "s",
}


def process_camera_events(control: CameraControl, actions: Iterable[Action]) -> None:
    for action in actions:
        flag = _CAMERA_FLAGS.get(action.kind)
        if flag is not None:
            setattr(control, flag, action.active)


class EventSource(Protocol):
    """Translates device input into domain actions, once per frame."""

    def poll(self) -> list[Action]: ...


class ScriptedEvents:
    """
    Replays a fixed list of per-frame action batches, then stays idle.

    Useful for headless runs and tests: `ScriptedEvents([[], [Action.exit()]])`
    quits on the second poll.
    """

    def __init__(self, frames: Sequence[Sequence[Action]] = ()):
        self._frames = [list(batch) for batch in frames]
        self.polls = 0

    def poll(self) -> list[Action]:
        self.polls += 1
        if self._frames:
            return self._frames.pop(0)
        return []
