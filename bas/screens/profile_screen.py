import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from rich.markup import escape

from ..engine.bus import batch
from ..engine.keys import matches
from ..engine.messages import KeyMsg, RepoPathConfirmed, Stage, StageEvent
from ..engine.navigator import Navigator
from ..engine.stream import ProcessExited
from ..errors import CommandError, SetupError
from ..utils.profile_utils import Profile, ProfileService
from .base import ScreenState, StageScreen

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    CHECKING_CONFIG = 0
    SELECT_OPTION = 1
    LOADING_PACKAGES = 2
    CONFIRMATION = 3
    CHECKING_PACKAGE_MANAGER = 4
    INSTALLING_PACKAGE_MANAGER = 5
    INSTALLING_PACKAGES = 6
    POST_INSTALL_CONFIRMATION = 7
    POST_INSTALL_RUNNING = 8
    INSTALL_COMPLETE = 9
    ERROR = 10


@dataclass(frozen=True)
class ProfilesLoaded(StageEvent):
    profiles: tuple = ()
    err: Optional[Exception] = None


@dataclass(frozen=True)
class PackagesLoaded(StageEvent):
    packages: tuple = ()
    err: Optional[Exception] = None


@dataclass(frozen=True)
class PackageManagerChecked(StageEvent):
    present: bool = False
    err: Optional[Exception] = None


@dataclass(frozen=True)
class PackageInstalled(StageEvent):
    package: str = ""
    output: str = ""
    err: Optional[Exception] = None


@dataclass(frozen=True)
class LinksApplied(StageEvent):
    err: Optional[Exception] = None


@dataclass
class ProfileState(ScreenState):
    repo_path: str = ""
    profiles: List[Profile] = field(default_factory=list)
    cursor: int = 0
    selected: Optional[Profile] = None
    packages: List[str] = field(default_factory=list)
    installed: int = 0
    failed: List[str] = field(default_factory=list)
    links_done: bool = False
    packages_done: bool = False


class ProfileScreen(StageScreen):
    """Pick a machine profile and install it: packages, links, post-install."""

    stage = Stage.PROFILE
    interests = (RepoPathConfirmed,)
    busy = frozenset({
        Phase.CHECKING_CONFIG,
        Phase.LOADING_PACKAGES,
        Phase.CHECKING_PACKAGE_MANAGER,
        Phase.INSTALLING_PACKAGE_MANAGER,
        Phase.INSTALLING_PACKAGES,
        Phase.POST_INSTALL_RUNNING,
    })

    def __init__(self, service: ProfileService, **kwargs):
        self.service = service
        super().__init__(**kwargs)

    def new_state(self):
        return ProfileState(nav=Navigator(Phase.CHECKING_CONFIG))

    def init(self):
        repo_path = self.state.repo_path
        self.fresh_state()
        self.state.repo_path = repo_path
        return self.load_profiles_cmd()

    # Commands

    def load_profiles_cmd(self):
        service, stage, origin = self.service, self.stage, self.origin
        repo_path = self.state.repo_path

        async def _load_profiles():
            try:
                profiles = await service.load_profiles(repo_path)
            except SetupError as exc:
                return ProfilesLoaded(stage, origin, err=exc)
            return ProfilesLoaded(stage, origin, profiles=tuple(profiles))

        return _load_profiles

    def load_packages_cmd(self, profile: Profile):
        service, stage, origin = self.service, self.stage, self.origin
        repo_path = self.state.repo_path

        async def _load_packages():
            try:
                packages = await service.load_packages(repo_path, profile)
            except SetupError as exc:
                return PackagesLoaded(stage, origin, err=exc)
            return PackagesLoaded(stage, origin, packages=tuple(packages))

        return _load_packages

    def check_package_manager_cmd(self):
        service, stage, origin = self.service, self.stage, self.origin

        async def _check_package_manager():
            try:
                present = await service.has_package_manager()
            except SetupError as exc:
                return PackageManagerChecked(stage, origin, err=exc)
            return PackageManagerChecked(stage, origin, present=present)

        return _check_package_manager

    def install_package_cmd(self, pkg: str):
        service, stage, origin = self.service, self.stage, self.origin

        async def _install_package():
            try:
                output = await service.install_package(pkg)
            except CommandError as exc:
                return PackageInstalled(stage, origin, package=pkg, output=exc.output or "", err=exc)
            return PackageInstalled(stage, origin, package=pkg, output=output)

        _install_package.__qualname__ = f"install_package({pkg})"
        return _install_package

    def apply_links_cmd(self):
        service, stage, origin = self.service, self.stage, self.origin
        repo_path, stow_dirs = self.state.repo_path, self.state.selected.stow_dirs

        async def _apply_links():
            try:
                await service.apply_links(repo_path, stow_dirs)
            except SetupError as exc:
                return LinksApplied(stage, origin, err=exc)
            return LinksApplied(stage, origin)

        return _apply_links

    def post_install_cmd(self):
        profile = self.state.selected
        post = profile.post_install
        return self.stream(
            ["sh", "-c", post.command],
            cwd=self.service.post_install_cwd(self.state.repo_path, post),
            env={"MACHINE_PROFILES": profile.role_list},
        )

    # Transitions

    def handle(self, msg):
        state = self.state
        if isinstance(msg, RepoPathConfirmed):
            state.repo_path = msg.path
            return None

        if self.phase in (Phase.INSTALLING_PACKAGE_MANAGER, Phase.POST_INSTALL_RUNNING):
            cmd = self.handle_process(msg)
            if cmd is not None:
                return cmd

        if isinstance(msg, ProfilesLoaded):
            if msg.err is not None:
                return self._fail(msg.err)
            state.profiles = list(msg.profiles)
            state.cursor = 0
            state.nav.push(Phase.SELECT_OPTION)
            return None

        if isinstance(msg, PackagesLoaded):
            if msg.err is not None:
                return self._fail(msg.err)
            state.packages = list(msg.packages)
            state.nav.push(Phase.CONFIRMATION)
            return None

        if isinstance(msg, PackageManagerChecked):
            if msg.err is not None:
                return self._fail(msg.err)
            if msg.present:
                return self.start_installing()
            logger.info("profile: %s missing, bootstrapping", self.service.package_manager)
            state.nav.push(Phase.INSTALLING_PACKAGE_MANAGER)
            return self.stream(self.service.bootstrap_argv())

        if isinstance(msg, LinksApplied):
            if msg.err is not None:
                return self._fail(msg.err)
            state.links_done = True
            return self._maybe_finish()

        if isinstance(msg, PackageInstalled):
            return self.package_installed(msg)

        if isinstance(msg, KeyMsg):
            return self.handle_key(msg)
        return None

    def _fail(self, err: Exception):
        logger.error("profile: %s", err)
        self.state.err = err
        self.state.nav.push(Phase.ERROR)
        return None

    def start_installing(self):
        state = self.state
        state.nav.push(Phase.INSTALLING_PACKAGES)
        state.run += 1
        state.installed = 0
        state.failed = []
        state.links_done = False
        state.packages_done = not state.packages
        first = self.install_package_cmd(state.packages[0]) if state.packages else None
        return batch(self.apply_links_cmd(), first)

    def package_installed(self, msg: PackageInstalled):
        state = self.state
        for line in msg.output.splitlines():
            self.append_log(line)
        if msg.err is not None:
            logger.warning("profile: failed to install %s: %s", msg.package, msg.err)
            state.failed.append(msg.package)
            self.append_log(f"Failed to install {msg.package}")
        state.installed += 1
        if state.installed < len(state.packages):
            return self.install_package_cmd(state.packages[state.installed])
        state.packages_done = True
        return self._maybe_finish()

    def _maybe_finish(self):
        state = self.state
        if not (state.links_done and state.packages_done):
            return None
        if state.failed:
            logger.warning("profile: %d packages failed: %s", len(state.failed), ", ".join(state.failed))
        if state.selected.post_install is not None:
            state.nav.push(Phase.POST_INSTALL_CONFIRMATION)
        else:
            state.nav.push(Phase.INSTALL_COMPLETE)
        return None

    def process_exited(self, msg: ProcessExited):
        if not msg.ok:
            return self._fail(msg.err)
        if self.phase == Phase.INSTALLING_PACKAGE_MANAGER:
            logger.info("profile: package manager ready")
            return self.start_installing()
        self.state.nav.push(Phase.INSTALL_COMPLETE)
        return None

    def handle_key(self, msg: KeyMsg):
        keys, state = self.keys, self.state
        phase = self.phase
        if phase == Phase.SELECT_OPTION:
            if matches(msg.key, keys.up) and state.profiles:
                state.cursor = (state.cursor - 1) % len(state.profiles)
            elif matches(msg.key, keys.down) and state.profiles:
                state.cursor = (state.cursor + 1) % len(state.profiles)
            elif matches(msg.key, keys.enter) and state.profiles:
                state.selected = state.profiles[state.cursor]
                state.nav.push(Phase.LOADING_PACKAGES)
                return self.load_packages_cmd(state.selected)
            elif matches(msg.key, keys.back, keys.quit):
                return self.cancelled()
        elif phase == Phase.CONFIRMATION:
            if matches(msg.key, keys.enter):
                state.nav.push(Phase.CHECKING_PACKAGE_MANAGER)
                return self.check_package_manager_cmd()
            if matches(msg.key, keys.back):
                self.restart(Phase.SELECT_OPTION)
        elif phase == Phase.POST_INSTALL_CONFIRMATION:
            if matches(msg.key, keys.enter):
                state.nav.push(Phase.POST_INSTALL_RUNNING)
                return self.post_install_cmd()
            if matches(msg.key, keys.back):
                state.nav.push(Phase.INSTALL_COMPLETE)
        elif phase == Phase.INSTALL_COMPLETE:
            if matches(msg.key, keys.enter, keys.back):
                return self.finished()
        elif phase == Phase.ERROR:
            if matches(msg.key, keys.enter, keys.back):
                state.err = None
                self.restart(Phase.SELECT_OPTION)
        return None

    # Rendering

    def view(self) -> str:
        t = self.theme
        state = self.state
        phase = self.phase
        name = escape(state.selected.name) if state.selected else ""

        if phase == Phase.CHECKING_CONFIG:
            return self.spinner_view("Reading machine profiles...")
        if phase == Phase.LOADING_PACKAGES:
            return self.spinner_view(f"Loading package list for {state.selected.name}...")
        if phase == Phase.CHECKING_PACKAGE_MANAGER:
            return self.spinner_view("Checking for a package manager...")
        if phase in (Phase.INSTALLING_PACKAGE_MANAGER, Phase.INSTALLING_PACKAGES, Phase.POST_INSTALL_RUNNING):
            if phase == Phase.INSTALLING_PACKAGES:
                total = len(state.packages)
                current = min(state.installed + 1, total)
                header = self.spinner_view(f"Installing packages ({current}/{total}) and linking dotfiles...")
            elif phase == Phase.INSTALLING_PACKAGE_MANAGER:
                header = self.spinner_view(f"Installing {self.service.package_manager}...")
            else:
                header = self.spinner_view("Running post-install step...")
            tail = self.log_view(reserved=4)
            return "\n".join([header, ""] + ([tail] if tail else []))

        if phase == Phase.CONFIRMATION:
            lines = [
                t.heading(f"Install profile {name}?"),
                t.hint(f"{len(state.packages)} packages will be installed."),
            ]
            if state.selected.stow_dirs:
                lines.append(t.hint("Links: " + escape(" ".join(state.selected.stow_dirs))))
            lines += ["", t.hint("Press Enter to install, or Esc to pick another profile.")]
            return "\n".join(lines)

        if phase == Phase.POST_INSTALL_CONFIRMATION:
            post = state.selected.post_install
            return "\n".join([
                t.heading("Run the post-install step?"),
                escape(post.description or post.command),
                "",
                t.hint("Press Enter to run it, or Esc to skip."),
            ])

        if phase == Phase.INSTALL_COMPLETE:
            lines = [t.ok(f"✅ Profile {name} installed.")]
            if state.failed:
                lines.append(t.failure("Failed packages: " + ", ".join(state.failed)))
            lines += ["", t.hint("Press Enter to return to the menu.")]
            return "\n".join(lines)

        if phase == Phase.ERROR:
            return "\n".join([
                t.failure(f"❌ {self.error_text()}"),
                "",
                t.hint("Press Enter or Esc to go back."),
            ])

        lines = [t.heading("Select a machine profile"), ""]
        if not state.profiles:
            lines.append(t.hint("No profiles found for this machine."))
        for i, profile in enumerate(state.profiles):
            label = ("» " if i == state.cursor else "  ") + profile.name
            lines.append(t.paint(t.title if i == state.cursor else t.normal, label))
            if profile.description:
                lines.append(t.hint("    " + profile.description))
        lines += ["", t.hint("↑/↓ to move, Enter to select, Esc to go back.")]
        return "\n".join(lines)
