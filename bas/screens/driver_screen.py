import enum
import logging
from dataclasses import dataclass

from ..engine.keys import matches
from ..engine.messages import KeyMsg, Stage
from ..engine.navigator import Navigator
from ..engine.stream import ProcessExited
from ..utils.gpu_utils import DRIVER_PACKAGES, driver_install_argv
from .base import ScreenState, StageScreen

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    CONFIRMATION = 0
    INSTALLING = 1
    SUCCESS = 2
    ERROR = 3


@dataclass
class DriverState(ScreenState):
    confirm_yes: bool = True


class DriverScreen(StageScreen):
    """Install the proprietary NVIDIA driver stack."""

    stage = Stage.DRIVER
    busy = frozenset({Phase.INSTALLING})

    def new_state(self):
        return DriverState(nav=Navigator(Phase.CONFIRMATION))

    def init(self):
        self.fresh_state()
        return None

    def handle(self, msg):
        if self.phase == Phase.INSTALLING:
            cmd = self.handle_process(msg)
            if cmd is not None:
                return cmd
        if isinstance(msg, KeyMsg):
            return self.handle_key(msg)
        return None

    def process_exited(self, msg: ProcessExited):
        if msg.ok:
            logger.info("driver: installation complete")
            self.state.nav.push(Phase.SUCCESS)
        else:
            logger.error("driver: installation failed: %s", msg.err)
            self.state.err = msg.err
            self.state.nav.push(Phase.ERROR)
        return None

    def handle_key(self, msg: KeyMsg):
        keys, state = self.keys, self.state
        phase = self.phase
        if phase == Phase.CONFIRMATION:
            if matches(msg.key, keys.up, keys.down):
                state.confirm_yes = not state.confirm_yes
            elif matches(msg.key, keys.enter):
                if not state.confirm_yes:
                    return self.cancelled()
                state.nav.push(Phase.INSTALLING)
                return self.stream(driver_install_argv())
            elif matches(msg.key, keys.back):
                return self.cancelled()
        elif phase in (Phase.SUCCESS, Phase.ERROR):
            if matches(msg.key, keys.enter, keys.back):
                return self.finished()
        return None

    def view(self) -> str:
        t = self.theme
        phase = self.phase
        if phase == Phase.INSTALLING:
            lines = [self.spinner_view("Installing NVIDIA drivers..."), ""]
            tail = self.log_view(reserved=4)
            if tail:
                lines.append(tail)
            return "\n".join(lines)
        if phase == Phase.SUCCESS:
            return "\n".join([
                t.ok("✅ NVIDIA drivers installed successfully."),
                t.hint("A reboot is required for the changes to take effect."),
                "",
                t.hint("Press Enter to return to the menu."),
            ])
        if phase == Phase.ERROR:
            return "\n".join([
                t.failure(f"❌ Installation failed: {self.error_text()}"),
                "",
                t.hint("Press Enter to return to the menu."),
            ])

        yes = "» Yes" if self.state.confirm_yes else "  Yes"
        no = "  No" if self.state.confirm_yes else "» No"
        return "\n".join([
            t.heading("Install NVIDIA drivers?"),
            t.hint("The following packages will be installed with pacman:"),
            t.paint(t.normal, "  " + " ".join(DRIVER_PACKAGES)),
            "",
            t.paint(t.title if self.state.confirm_yes else t.normal, yes),
            t.paint(t.normal if self.state.confirm_yes else t.title, no),
            "",
            t.hint("↑/↓ to choose, Enter to confirm, Esc to go back."),
        ])
