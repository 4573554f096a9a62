import enum
import logging
from dataclasses import dataclass
from typing import Optional

from rich.markup import escape

from ..engine.keys import matches
from ..engine.messages import KeyMsg, Stage, StageEvent
from ..engine.navigator import Navigator
from ..errors import SetupError
from ..utils.api_utils import is_key_registered
from ..utils.ssh_utils import SshService
from .base import ScreenState, StageScreen

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    CHECKING_KEY = 0
    GENERATING_KEY = 1
    DISPLAYING_KEY = 2
    VERIFYING = 3
    AUTH_COMPLETE = 4
    FINAL_SUCCESS = 5
    AUTH_ERROR = 6


@dataclass(frozen=True)
class KeyChecked(StageEvent):
    key_exists: bool = False
    authenticated: bool = False
    public_key: str = ""
    username: str = ""
    err: Optional[Exception] = None


@dataclass(frozen=True)
class KeyGenerated(StageEvent):
    public_key: str = ""
    err: Optional[Exception] = None


@dataclass(frozen=True)
class Verified(StageEvent):
    ok: bool = False
    username: str = ""
    registered: Optional[bool] = None
    err: Optional[Exception] = None


@dataclass
class AuthState(ScreenState):
    public_key: str = ""
    username: str = ""
    registered: Optional[bool] = None


class AuthScreen(StageScreen):
    """Make sure an SSH key exists and the git host accepts it."""

    stage = Stage.AUTH
    busy = frozenset({Phase.CHECKING_KEY, Phase.GENERATING_KEY, Phase.VERIFYING})

    def __init__(self, ssh: SshService, **kwargs):
        self.ssh = ssh
        super().__init__(**kwargs)

    def new_state(self):
        return AuthState(nav=Navigator(Phase.CHECKING_KEY))

    def init(self):
        self.fresh_state()
        return self.check_key_cmd()

    # Commands

    def check_key_cmd(self):
        ssh, stage, origin = self.ssh, self.stage, self.origin

        async def _check_key():
            try:
                await ssh.ensure_known_host()
                public_key = await ssh.read_public_key()
                if public_key is None:
                    return KeyChecked(stage, origin, key_exists=False)
                logger.info("auth: existing key found, probing connection")
                authenticated, username, _ = await ssh.check_connection()
            except SetupError as exc:
                return KeyChecked(stage, origin, err=exc)
            return KeyChecked(
                stage,
                origin,
                key_exists=True,
                authenticated=authenticated,
                public_key=public_key,
                username=username,
            )

        return _check_key

    def generate_key_cmd(self):
        ssh, stage, origin = self.ssh, self.stage, self.origin

        async def _generate_key():
            try:
                public_key = await ssh.generate_key()
            except SetupError as exc:
                return KeyGenerated(stage, origin, err=exc)
            return KeyGenerated(stage, origin, public_key=public_key)

        return _generate_key

    def verify_cmd(self):
        ssh, stage, origin = self.ssh, self.stage, self.origin
        public_key = self.state.public_key

        async def _verify():
            try:
                await ssh.ensure_known_host()
                ok, username, output = await ssh.check_connection()
            except SetupError as exc:
                return Verified(stage, origin, err=exc)
            if not ok:
                return Verified(stage, origin, err=SetupError(f"SSH connection failed: {output}"))
            registered = await is_key_registered(username, public_key, ssh.host)
            return Verified(stage, origin, ok=True, username=username, registered=registered)

        return _verify

    # Transitions

    def handle(self, msg):
        nav = self.state.nav
        if isinstance(msg, KeyChecked):
            if msg.err is not None:
                return self._fail(msg.err)
            if not msg.key_exists:
                logger.info("auth: no key found")
                nav.push(Phase.GENERATING_KEY)
                return self.generate_key_cmd()
            self.state.public_key = msg.public_key
            if not msg.authenticated:
                logger.info("auth: key found but not authenticated")
                nav.push(Phase.DISPLAYING_KEY)
                return None
            logger.info("auth: already authenticated as %s", msg.username)
            self.state.username = msg.username
            nav.push(Phase.AUTH_COMPLETE)
            return None

        if isinstance(msg, KeyGenerated):
            if msg.err is not None:
                return self._fail(msg.err)
            logger.info("auth: key generation complete")
            self.state.public_key = msg.public_key
            nav.push(Phase.DISPLAYING_KEY)
            return None

        if isinstance(msg, Verified):
            if msg.err is not None:
                return self._fail(msg.err)
            logger.info("auth: authenticated as %s", msg.username)
            self.state.username = msg.username
            self.state.registered = msg.registered
            nav.push(Phase.FINAL_SUCCESS)
            return None

        if isinstance(msg, KeyMsg):
            return self.handle_key(msg)
        return None

    def _fail(self, err: Exception):
        logger.info("auth: %s", err)
        self.state.err = err
        self.state.nav.push(Phase.AUTH_ERROR)
        return None

    def handle_key(self, msg: KeyMsg):
        phase = self.phase
        if phase in (Phase.DISPLAYING_KEY, Phase.AUTH_ERROR, Phase.AUTH_COMPLETE):
            if matches(msg.key, self.keys.enter):
                self.state.err = None
                self.state.nav.push(Phase.VERIFYING)
                return self.verify_cmd()
            if matches(msg.key, self.keys.back):
                return self.cancelled()
        elif phase == Phase.FINAL_SUCCESS:
            if matches(msg.key, self.keys.enter):
                return self.finished()
        return None

    # Rendering

    def view(self) -> str:
        t = self.theme
        phase = self.phase
        if phase in self.busy:
            return self.spinner_view(
                {
                    Phase.CHECKING_KEY: "Checking for existing SSH key...",
                    Phase.GENERATING_KEY: "No key found, generating a new one...",
                    Phase.VERIFYING: f"Verifying connection to {self.ssh.host}...",
                }[phase]
            )

        if phase == Phase.FINAL_SUCCESS:
            lines = [t.ok(f"✅ Successfully authenticated as {self.state.username}!"), ""]
            if self.state.registered is True:
                lines.append(t.hint("This key is listed on your account."))
            elif self.state.registered is False:
                lines.append(t.hint("Another key on your account authenticated this machine."))
            lines.append(t.hint("Press Enter to return to the menu."))
            return "\n".join(lines)

        if phase == Phase.DISPLAYING_KEY:
            header = t.heading("Please add this public SSH key to your account:")
            instructions = "Press Enter when you're done."
        elif phase == Phase.AUTH_ERROR:
            header = t.failure(f"Verification Failed: {self.error_text()}")
            if self.state.public_key:
                header += "\n\n" + t.heading("Please add this public SSH key to your account:")
            instructions = "Press Enter to retry, or Esc to go back."
        else:
            header = t.ok(f"✅ Already authenticated as {self.state.username}")
            instructions = "Press Enter to re-validate, or Esc to return to the menu."

        lines = [header, t.hint(f"https://{self.ssh.host}/settings/keys"), ""]
        if self.state.public_key:
            lines += [escape(self.state.public_key.strip()), ""]
        lines.append(t.hint(instructions))
        return "\n".join(lines)
