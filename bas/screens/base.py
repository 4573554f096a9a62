"""Shared behaviour for the wizard stages."""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from rich.markup import escape

from ..engine.bus import emit
from ..engine.keys import DEFAULT_KEYS, KeyMap
from ..engine.messages import (
    Message,
    ResizeMsg,
    Stage,
    StageCancelled,
    StageEvent,
    StageFinished,
    TickMsg,
)
from ..engine.navigator import Navigator
from ..engine.stream import (
    LINE_BUFFER,
    ProcessExited,
    ProcessOutput,
    ProcessStarted,
    read_line,
    start_process,
)
from ..theme import DEFAULT_THEME, Theme

logger = logging.getLogger(__name__)

SPINNER_FRAMES = "⣾⣽⣻⢿⡿⣟⣯⣷"
MAX_LOG_LINES = 500


@dataclass
class ScreenState:
    nav: Navigator
    width: int = 0
    height: int = 0
    spinner: int = 0
    err: Optional[Exception] = None
    log: List[str] = field(default_factory=list)
    # Bumped whenever the stage starts over.
    run: int = 0


class StageScreen:
    """One self-contained sub-wizard.

    Subclasses set ``stage``, build their state in ``new_state`` and react to
    messages in ``handle``. ``update`` takes care of resize, spinner ticks and
    stale results. Commands tag their results with ``origin``, the phase and
    run that asked for them; a result whose origin no longer matches is stale.
    """

    stage: Stage
    interests: Tuple[type, ...] = ()
    busy: FrozenSet = frozenset()

    def __init__(self, theme: Theme = DEFAULT_THEME, keys: KeyMap = DEFAULT_KEYS, line_buffer: int = LINE_BUFFER):
        self.theme = theme
        self.keys = keys
        self.line_buffer = line_buffer
        self.state = self.new_state()

    def new_state(self) -> ScreenState:
        raise NotImplementedError

    @property
    def phase(self):
        return self.state.nav.current()

    @property
    def origin(self):
        return (self.phase, self.state.run)

    def restart(self, phase) -> None:
        """Go back to ``phase`` with a fresh history, abandoning in-flight results."""
        self.state.nav.reset(phase)
        self.state.run += 1

    def fresh_state(self) -> None:
        """Replace the state for a new run, keeping dimensions and the run count."""
        old = self.state
        self.state = self.new_state()
        self.state.width, self.state.height = old.width, old.height
        self.state.run = old.run + 1

    def init(self):
        return None

    def update(self, msg: Message):
        if isinstance(msg, ResizeMsg):
            self.state.width, self.state.height = msg.width, msg.height
            return None
        if isinstance(msg, TickMsg):
            if self.phase in self.busy:
                self.state.spinner += 1
            return None
        if isinstance(msg, StageEvent) and msg.origin != self.origin:
            return self.discard(msg)
        return self.handle(msg)

    def handle(self, msg: Message):
        return None

    def view(self) -> str:
        raise NotImplementedError

    def publish(self, payload) -> Optional[Message]:
        """Message derived from this stage's finish payload, for its siblings."""
        return None

    def discard(self, msg: StageEvent):
        logger.debug("%s: dropping stale %s from %s (now %s)", self.stage.name, type(msg).__name__, msg.origin, self.origin)
        # Keep draining an abandoned process so it is still reaped.
        if isinstance(msg, (ProcessStarted, ProcessOutput)):
            return read_line(msg.handle, msg.stage, msg.origin)
        return None

    # Commands

    def finished(self, payload=None):
        return emit(StageFinished(payload=payload))

    def cancelled(self):
        return emit(StageCancelled())

    def stream(self, argv, **kwargs):
        return start_process(argv, self.stage, self.origin, maxsize=self.line_buffer, **kwargs)

    def handle_process(self, msg: StageEvent):
        """Pull loop for a streamed process. Returns None for non-process messages."""
        if isinstance(msg, ProcessStarted):
            return read_line(msg.handle, self.stage, msg.origin)
        if isinstance(msg, ProcessOutput):
            self.append_log(msg.line)
            return read_line(msg.handle, self.stage, msg.origin)
        if isinstance(msg, ProcessExited):
            return self.process_exited(msg)
        return None

    def process_exited(self, msg: ProcessExited):
        return None

    def append_log(self, line: str) -> None:
        self.state.log.append(line)
        del self.state.log[:-MAX_LOG_LINES]

    # Rendering helpers

    def spinner_view(self, text: str) -> str:
        frame = SPINNER_FRAMES[self.state.spinner % len(SPINNER_FRAMES)]
        return f"{self.theme.paint(self.theme.spinner, frame)} {escape(text)}"

    def log_view(self, reserved: int = 6) -> str:
        rows = max(self.state.height - reserved, 3)
        tail = self.state.log[-rows:]
        return self.theme.paint(self.theme.normal, "\n".join(tail)) if tail else ""

    def error_text(self) -> str:
        return str(self.state.err) if self.state.err else ""
