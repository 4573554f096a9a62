import enum
import logging
from dataclasses import dataclass, field
from typing import List

from ..engine.bus import emit
from ..engine.keys import matches
from ..engine.messages import (
    AuthStatus,
    EnterStage,
    GpuDetected,
    KeyMsg,
    RepoPathConfirmed,
    Stage,
    StageBack,
    StageDone,
)
from ..engine.navigator import Navigator
from ..utils.ssh_utils import SshService
from .base import ScreenState, StageScreen

logger = logging.getLogger(__name__)

TITLE = "BAS - Bootstrap All Systems"
AUTH_DESC = "Set up SSH keys for the git host. {}"
REPO_DESC = "Clone and set up your dotfiles. {}"
DRIVER_DESC = "Install proprietary drivers for your GPU"
DRIVER_MISSING_DESC = "No NVIDIA GPU detected"
PROFILE_DESC = "Pick a machine profile to match your setup"


class Phase(enum.Enum):
    LIST = 0


@dataclass
class MenuItem:
    stage: Stage
    title: str
    description: str
    enabled: bool = False
    done: bool = False


def default_items() -> List[MenuItem]:
    return [
        MenuItem(Stage.AUTH, "Git Host Authentication", AUTH_DESC.format("(Checking...)"), enabled=True),
        MenuItem(Stage.REPO, "Dotfiles Setup", REPO_DESC.format("(Not connected)")),
        MenuItem(Stage.DRIVER, "NVIDIA Drivers", DRIVER_MISSING_DESC),
        MenuItem(Stage.PROFILE, "Machine Profile", PROFILE_DESC),
    ]


@dataclass
class MenuState(ScreenState):
    items: List[MenuItem] = field(default_factory=default_items)
    cursor: int = 0
    repo_path: str = ""


class MenuScreen(StageScreen):
    """Root stage: pick the next setup task."""

    stage = Stage.MENU
    interests = (StageDone, RepoPathConfirmed)

    def __init__(self, ssh: SshService, **kwargs):
        self.ssh = ssh
        super().__init__(**kwargs)

    def new_state(self):
        return MenuState(nav=Navigator(Phase.LIST))

    def init(self):
        return self.auth_status_cmd()

    def auth_status_cmd(self):
        ssh = self.ssh

        async def _check_auth():
            authenticated, username, _ = await ssh.check_connection()
            return AuthStatus(authenticated=authenticated, username=username)

        return _check_auth

    def item(self, stage: Stage) -> MenuItem:
        return next(i for i in self.state.items if i.stage == stage)

    def handle(self, msg):
        if isinstance(msg, AuthStatus):
            auth = self.item(Stage.AUTH)
            auth.done = msg.authenticated
            auth.description = AUTH_DESC.format(
                "(Authenticated)" if msg.authenticated else "(Not Authenticated)"
            )
            repo = self.item(Stage.REPO)
            repo.enabled = msg.authenticated
            repo.description = REPO_DESC.format(
                "(Connected)" if msg.authenticated else "(Not connected)"
            )
            return None

        if isinstance(msg, GpuDetected):
            driver = self.item(Stage.DRIVER)
            driver.enabled = msg.has_gpu
            driver.description = DRIVER_DESC if msg.has_gpu else DRIVER_MISSING_DESC
            return None

        if isinstance(msg, RepoPathConfirmed):
            logger.info("menu: dotfiles path confirmed: %s", msg.path)
            self.state.repo_path = msg.path
            self.item(Stage.PROFILE).enabled = bool(msg.path)
            return None

        if isinstance(msg, StageDone):
            for item in self.state.items:
                if item.stage == msg.stage:
                    item.done = True
            return None

        if isinstance(msg, KeyMsg):
            return self.handle_key(msg)
        return None

    def handle_key(self, msg: KeyMsg):
        items = self.state.items
        if matches(msg.key, self.keys.up):
            self.state.cursor = (self.state.cursor - 1) % len(items)
        elif matches(msg.key, self.keys.down):
            self.state.cursor = (self.state.cursor + 1) % len(items)
        elif matches(msg.key, self.keys.enter):
            selected = items[self.state.cursor]
            if not selected.enabled:
                return None
            return emit(EnterStage(stage=selected.stage))
        elif matches(msg.key, self.keys.back, self.keys.quit):
            return emit(StageBack())
        return None

    def view(self) -> str:
        t = self.theme
        lines = [t.heading(TITLE), ""]
        for i, item in enumerate(self.state.items):
            mark = "✓ " if item.done else "  "
            title = f"{mark}{item.title}"
            if i == self.state.cursor:
                lines.append(t.paint(t.title if item.enabled else t.subtle, "» " + title))
            else:
                lines.append(t.paint(t.normal if item.enabled else t.subtle, "  " + title))
            lines.append(t.hint("    " + item.description))
            lines.append("")
        lines.append(t.hint("↑/↓ to move, Enter to select, Esc/q to quit"))
        return "\n".join(lines)
