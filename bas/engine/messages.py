"""Messages consumed by the update loop.

Every message is an immutable dataclass. Results addressed to one stage
subclass ``StageEvent`` so the orchestrator can route them to their owner and
the owner can recognise results issued from a phase it has since left.
"""

import enum
from dataclasses import dataclass
from typing import Any, Optional


class Stage(enum.Enum):
    MENU = 0
    AUTH = 1
    REPO = 2
    DRIVER = 3
    PROFILE = 4


@dataclass(frozen=True)
class Message:
    pass


@dataclass(frozen=True)
class BroadcastMessage(Message):
    """Applied to every stage, active or not."""


@dataclass(frozen=True)
class KeyMsg(Message):
    key: str
    character: Optional[str] = None


@dataclass(frozen=True)
class ResizeMsg(BroadcastMessage):
    width: int
    height: int


@dataclass(frozen=True)
class TickMsg(BroadcastMessage):
    pass


@dataclass(frozen=True)
class QuitMsg(Message):
    pass


@dataclass(frozen=True)
class CommandFailed(Message):
    command: str
    error: BaseException


# Stage lifecycle


@dataclass(frozen=True)
class EnterStage(Message):
    stage: Stage


@dataclass(frozen=True)
class StageFinished(Message):
    payload: Any = None


@dataclass(frozen=True)
class StageCancelled(Message):
    pass


@dataclass(frozen=True)
class StageBack(Message):
    pass


# Cross-cutting status


@dataclass(frozen=True)
class AuthStatus(BroadcastMessage):
    authenticated: bool
    username: str = ""


@dataclass(frozen=True)
class GpuDetected(BroadcastMessage):
    has_gpu: bool


@dataclass(frozen=True)
class StageDone(Message):
    stage: Stage


@dataclass(frozen=True)
class RepoPathConfirmed(Message):
    path: str


@dataclass(frozen=True)
class StageEvent(Message):
    stage: Stage
    origin: Any
