import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from rich.markup import escape

from ..engine.keys import matches
from ..engine.messages import AuthStatus, KeyMsg, RepoPathConfirmed, Stage, StageEvent
from ..engine.navigator import Navigator
from ..errors import SetupError
from ..utils.git_utils import RepoService
from .base import ScreenState, StageScreen
from .widgets import TextField

logger = logging.getLogger(__name__)

MAX_INPUT_WIDTH = 100


class Phase(enum.Enum):
    INPUT = 0
    VALIDATING = 1
    DIR_EXISTS = 2
    CONFIRMATION = 3
    CLONING = 4
    CLONE_COMPLETE = 5


@dataclass(frozen=True)
class ValidationResult(StageEvent):
    err: Optional[Exception] = None
    dir_exists: bool = False


@dataclass(frozen=True)
class CloneResult(StageEvent):
    err: Optional[Exception] = None


@dataclass
class RepoState(ScreenState):
    repo: TextField = field(default_factory=lambda: TextField(placeholder="username/dotfiles-repo"))
    dest: TextField = field(default_factory=lambda: TextField(limit=200))
    focused: int = 0
    username: str = ""


class RepoScreen(StageScreen):
    """Clone the operator's dotfiles repository."""

    stage = Stage.REPO
    busy = frozenset({Phase.VALIDATING, Phase.CLONING})

    def __init__(self, service: RepoService, default_dest: str = "", **kwargs):
        self.service = service
        self.default_dest = default_dest
        super().__init__(**kwargs)
        self.keys = self.keys.for_text_input()

    def new_state(self):
        state = RepoState(nav=Navigator(Phase.INPUT))
        state.dest.value = self.default_dest
        state.dest.placeholder = self.default_dest
        return state

    def init(self):
        self.restart(Phase.INPUT)
        return None

    @property
    def repo_path(self) -> str:
        return self.state.repo.value.strip()

    @property
    def dest_path(self) -> str:
        return self.state.dest.value.strip()

    def publish(self, payload):
        if payload:
            return RepoPathConfirmed(path=payload)
        return None

    # Commands

    def validate_cmd(self, repo: str, dest: str):
        service, stage, origin = self.service, self.stage, self.origin

        async def _validate():
            result = await service.validate(repo, dest)
            return ValidationResult(stage, origin, err=result.err, dir_exists=result.dir_exists)

        return _validate

    def clone_cmd(self, repo: str, dest: str):
        service, stage, origin = self.service, self.stage, self.origin

        async def _clone():
            try:
                await service.clone(repo, dest)
            except SetupError as exc:
                return CloneResult(stage, origin, err=exc)
            return CloneResult(stage, origin)

        return _clone

    # Transitions

    def handle(self, msg):
        nav = self.state.nav
        if isinstance(msg, AuthStatus):
            self.state.username = msg.username
            if msg.username and not self.state.repo.value:
                self.state.repo.value = f"{msg.username}/dotfiles"
            return None

        if isinstance(msg, ValidationResult):
            if msg.err is not None:
                logger.info("repo: validation failed: %s", msg.err)
                self.state.err = msg.err
                nav.pop()
                return None
            nav.push(Phase.DIR_EXISTS if msg.dir_exists else Phase.CONFIRMATION)
            return None

        if isinstance(msg, CloneResult):
            if msg.err is not None:
                logger.error("repo: clone failed: %s", msg.err)
                self.state.err = msg.err
                self.restart(Phase.INPUT)
                return None
            nav.push(Phase.CLONE_COMPLETE)
            return None

        if isinstance(msg, KeyMsg):
            phase = self.phase
            if phase == Phase.INPUT:
                return self.handle_input_key(msg)
            if phase == Phase.CONFIRMATION:
                return self.handle_confirmation_key(msg)
            if phase in (Phase.CLONE_COMPLETE, Phase.DIR_EXISTS):
                return self.handle_complete_key(msg)
        return None

    def handle_input_key(self, msg: KeyMsg):
        keys, state = self.keys, self.state
        if matches(msg.key, keys.enter):
            repo, dest = self.repo_path, self.dest_path
            if not repo or not dest or repo.endswith("/"):
                state.err = SetupError("paths cannot be empty or incomplete")
                return None
            state.err = None
            state.nav.push(Phase.VALIDATING)
            return self.validate_cmd(repo, dest)

        if matches(msg.key, keys.back):
            return self.cancelled()
        if matches(msg.key, keys.tab, keys.down):
            state.focused = (state.focused + 1) % 2
        elif matches(msg.key, keys.shift_tab, keys.up):
            state.focused = (state.focused - 1) % 2
        else:
            field_ = state.repo if state.focused == 0 else state.dest
            if field_.handle_key(msg):
                state.err = None
        return None

    def handle_confirmation_key(self, msg: KeyMsg):
        if matches(msg.key, self.keys.back):
            self.restart(Phase.INPUT)
            return None
        if matches(msg.key, self.keys.enter):
            self.state.nav.push(Phase.CLONING)
            return self.clone_cmd(self.repo_path, self.dest_path)
        return None

    def handle_complete_key(self, msg: KeyMsg):
        if matches(msg.key, self.keys.enter):
            return self.finished(self.dest_path)
        if matches(msg.key, self.keys.back):
            self.restart(Phase.INPUT)
        return None

    # Rendering

    def input_width(self) -> int:
        return min(max(self.state.width - 4, 0), MAX_INPUT_WIDTH)

    def view(self) -> str:
        t = self.theme
        phase = self.phase
        repo, dest = escape(self.repo_path), escape(self.dest_path)

        if phase == Phase.VALIDATING:
            return self.spinner_view("Verifying repository and destination...")
        if phase == Phase.CLONING:
            return self.spinner_view(f"Cloning into {self.dest_path}...")
        if phase == Phase.CONFIRMATION:
            return "\n".join([
                f"Ready to clone [{t.title}]{repo}[/] into [{t.title}]{dest}[/]?",
                "",
                t.hint("Press Enter to confirm, or Esc to go back."),
            ])
        if phase == Phase.DIR_EXISTS:
            return "\n".join([
                f"✓ Dotfiles directory already found at [{t.title}]{dest}[/].",
                "",
                t.hint("Press Enter to continue, or Esc to go back."),
            ])
        if phase == Phase.CLONE_COMPLETE:
            return "\n".join([
                t.ok("✓ Dotfiles cloned successfully!"),
                "",
                t.hint("Press Enter to finish."),
            ])

        width = self.input_width()
        lines = [t.heading("Dotfiles Setup")]
        if self.state.err:
            lines.append(t.failure(self.error_text()))
        lines += [
            "",
            "Enter the path to your dotfiles repository.",
            t.hint("(e.g., ansimb/dotfiles)"),
            self.state.repo.render(t, self.state.focused == 0, width),
            "",
            "Where should the repository be cloned?",
            t.hint("(e.g. /home/you/dotfiles)"),
            self.state.dest.render(t, self.state.focused == 1, width),
            "",
            t.hint("Use Tab/Shift+Tab or ↑/↓ to switch. Press Enter to continue."),
        ]
        return "\n".join(lines)
