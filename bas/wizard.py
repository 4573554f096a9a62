#!/usr/bin/env python3
"""Entry point: the Textual host around the stage orchestrator."""

import argparse
import asyncio
import logging
import sys

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Center, Middle
from textual.widgets import Footer, Header, Static

from .config import Settings
from .engine.bus import Program
from .engine.keys import DEFAULT_KEYS, KeyMap
from .engine.messages import GpuDetected, KeyMsg, ResizeMsg, Stage, TickMsg
from .engine.orchestrator import Orchestrator
from .engine.shield import RecoveryShield
from .logging_utils import configure_logging
from .screens.auth_screen import AuthScreen
from .screens.driver_screen import DriverScreen
from .screens.menu_screen import MenuScreen
from .screens.profile_screen import ProfileScreen
from .screens.repo_screen import RepoScreen
from .theme import DEFAULT_THEME, Theme
from .utils.git_utils import RepoService
from .utils.gpu_utils import has_nvidia_gpu
from .utils.profile_utils import ProfileService
from .utils.ssh_utils import SshService

logger = logging.getLogger(__name__)

TICK_INTERVAL = 0.1


def detect_gpu_cmd():
    async def _detect_gpu():
        return GpuDetected(has_gpu=await has_nvidia_gpu())

    return _detect_gpu


def build_orchestrator(
    settings: Settings, theme: Theme = DEFAULT_THEME, keys: KeyMap = DEFAULT_KEYS
) -> Orchestrator:
    ssh = SshService(settings)
    common = dict(theme=theme, keys=keys, line_buffer=settings.line_buffer)
    screens = {
        Stage.MENU: MenuScreen(ssh, **common),
        Stage.AUTH: AuthScreen(ssh, **common),
        Stage.REPO: RepoScreen(RepoService(settings), default_dest=settings.default_dotfiles, **common),
        Stage.DRIVER: DriverScreen(**common),
        Stage.PROFILE: ProfileScreen(ProfileService(settings), **common),
    }
    return Orchestrator(screens, theme=theme, keys=keys, startup=[detect_gpu_cmd])


class BootstrapWizard(App):
    """Workstation bootstrap wizard."""

    TITLE = "Bootstrap All Systems"
    CSS = """
    #body {
        width: auto;
        height: auto;
        padding: 1 2;
    }
    """
    BINDINGS = [
        Binding("ctrl+c", "hard_quit", "Quit", priority=True),
    ]

    def __init__(self, settings: Settings, theme: Theme = DEFAULT_THEME, keys: KeyMap = DEFAULT_KEYS):
        super().__init__()
        self.settings = settings
        self.wizard_keys = keys
        self.shield = RecoveryShield(build_orchestrator(settings, theme, keys))
        self.program = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Middle():
            with Center():
                self.body = Static("", id="body")
                yield self.body
        yield Footer()

    def on_mount(self):
        self.program = Program(self.shield, on_render=self.body.update, on_quit=self.exit)
        self.run_worker(self.program.run(), exclusive=True, name="program")
        self.program.send(ResizeMsg(width=self.size.width, height=self.size.height))
        self.set_interval(TICK_INTERVAL, self._tick)

    def _tick(self):
        self.program.send(TickMsg())

    def on_resize(self, event: events.Resize):
        if self.program is not None:
            self.program.send(ResizeMsg(width=event.size.width, height=event.size.height))

    def on_key(self, event: events.Key):
        if self.program is None:
            return
        event.stop()
        event.prevent_default()
        self.program.send(KeyMsg(key=event.key, character=event.character))

    def action_hard_quit(self):
        if self.program is not None:
            self.program.send(KeyMsg(key=self.wizard_keys.hard_quit[0]))
        else:
            self.exit()


async def ensure_privileges() -> bool:
    """Cache sudo credentials before the TUI takes over the terminal."""
    quiet = await asyncio.create_subprocess_exec(
        "sudo", "-n", "true",
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    if await quiet.wait() == 0:
        return True
    print("Administrator privileges are required. Please enter your password.")
    prompt = await asyncio.create_subprocess_exec("sudo", "-v")
    return await prompt.wait() == 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="bas", description="Bootstrap a workstation.")
    parser.add_argument("--profiles", metavar="PATH", help="profile definitions file (default: <repo>/bas_settings.yaml)")
    parser.add_argument("--dotfiles", metavar="PATH", help="default clone destination (default: ~/Developer/dotfiles)")
    parser.add_argument("--skip-privilege-check", action="store_true", help="do not ask for sudo up front")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env(args=args)
    configure_logging(settings.debug, settings.log_path)
    logger.info("Starting with %s", settings)

    if not args.skip_privilege_check:
        try:
            ok = asyncio.run(ensure_privileges())
        except OSError as exc:
            logger.error("sudo check failed: %s", exc)
            ok = False
        if not ok:
            print("Error: administrator privileges are required.", file=sys.stderr)
            return 1

    BootstrapWizard(settings).run()
    logger.info("Exited normally")
    return 0


if __name__ == "__main__":
    sys.exit(main())
