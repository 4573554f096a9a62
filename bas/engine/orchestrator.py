"""Root dispatcher composing the stage screens."""

import copy
import logging
from typing import Iterable, Mapping, Optional

from ..errors import ensure
from ..theme import DEFAULT_THEME, Theme
from .bus import batch, emit
from .keys import DEFAULT_KEYS, KeyMap, matches
from .messages import (
    BroadcastMessage,
    CommandFailed,
    EnterStage,
    KeyMsg,
    Message,
    QuitMsg,
    ResizeMsg,
    Stage,
    StageBack,
    StageCancelled,
    StageDone,
    StageEvent,
    StageFinished,
)
from .navigator import Navigator

logger = logging.getLogger(__name__)


class Orchestrator:
    """Owns the cross-stage navigator and every stage screen.

    Keys go to the active stage. Broadcast messages go to every stage, in
    ``Stage`` order, so a backgrounded stage is current when it comes back.
    Stage-addressed results go to the stage that issued them.
    """

    def __init__(
        self,
        screens: Mapping[Stage, object],
        root: Stage = Stage.MENU,
        theme: Theme = DEFAULT_THEME,
        keys: KeyMap = DEFAULT_KEYS,
        startup: Iterable = (),
    ):
        ensure(root in screens, f"no screen registered for root stage {root}")
        self.screens = dict(sorted(screens.items(), key=lambda item: item[0].value))
        self.nav: Navigator[Stage] = Navigator(root)
        self.theme = theme
        self.keys = keys
        self.startup = tuple(startup)
        self.width = 0
        self.height = 0

    @property
    def active(self):
        screen = self.screens.get(self.nav.current())
        ensure(screen is not None, f"no screen for stage {self.nav.current()}")
        return screen

    def init(self):
        logger.info("orchestrator: init at %s", self.nav.current())
        return batch(self.active.init(), *(factory() for factory in self.startup))

    def update(self, msg: Message):
        if isinstance(msg, ResizeMsg):
            return self._resize(msg)
        if isinstance(msg, KeyMsg) and matches(msg.key, self.keys.hard_quit):
            logger.info("orchestrator: hard quit")
            return emit(QuitMsg())

        if isinstance(msg, StageFinished):
            return self._finished(msg)
        if isinstance(msg, StageCancelled):
            logger.info("orchestrator: %s cancelled", self.nav.current())
            return self._pop_and_init()
        if isinstance(msg, StageBack):
            if self.nav.pop():
                return None
            logger.info("orchestrator: back at root, quitting")
            return emit(QuitMsg())
        if isinstance(msg, EnterStage):
            ensure(msg.stage in self.screens, f"no screen for stage {msg.stage}")
            logger.info("orchestrator: entering %s", msg.stage)
            self.nav.push(msg.stage)
            return self.active.init()

        if isinstance(msg, CommandFailed):
            logger.error("orchestrator: command %s failed: %r", msg.command, msg.error)
            return None
        if isinstance(msg, BroadcastMessage):
            return self.broadcast(msg)
        if isinstance(msg, StageEvent):
            return self._route(msg)

        return self.active.update(msg)

    def broadcast(self, msg: Message):
        cmds = [screen.update(msg) for screen in self.screens.values()]
        return batch(*cmds)

    def fan_out(self, msg: Message):
        """Deliver ``msg`` to every stage that lists its type in ``interests``."""
        cmds = []
        for stage, screen in self.screens.items():
            if isinstance(msg, tuple(screen.interests)):
                logger.debug("orchestrator: %s -> %s", type(msg).__name__, stage)
                cmds.append(screen.update(msg))
        return batch(*cmds)

    def _resize(self, msg: ResizeMsg):
        self.width, self.height = msg.width, msg.height
        child = ResizeMsg(
            width=max(msg.width - self.theme.pad_x, 0),
            height=max(msg.height - self.theme.pad_y, 0),
        )
        return self.broadcast(child)

    def _finished(self, msg: StageFinished):
        finished = self.nav.current()
        logger.info("orchestrator: %s finished (payload=%r)", finished, msg.payload)

        derived = [StageDone(stage=finished)]
        published = self.screens[finished].publish(msg.payload)
        if published is not None:
            derived.append(published)

        cmds = [self.fan_out(m) for m in derived]
        cmds.append(self._pop_and_init())
        return batch(*cmds)

    def _route(self, msg: StageEvent):
        screen = self.screens.get(msg.stage)
        if screen is None:
            logger.warning("orchestrator: dropping %r for unknown stage", msg)
            return None
        return screen.update(msg)

    def _pop_and_init(self):
        if not self.nav.pop():
            logger.warning("orchestrator: nothing to pop from %s", self.nav.current())
        return self.active.init()

    def view(self) -> str:
        if self.width == 0:
            return ""
        return self.active.view()

    def snapshot(self):
        return copy.deepcopy(
            (
                self.nav,
                self.width,
                self.height,
                {stage: screen.state for stage, screen in self.screens.items()},
            )
        )

    def restore(self, snapshot) -> None:
        self.nav, self.width, self.height, states = snapshot
        for stage, state in states.items():
            self.screens[stage].state = state

    def state_of(self, stage: Stage) -> Optional[object]:
        screen = self.screens.get(stage)
        return None if screen is None else screen.state
