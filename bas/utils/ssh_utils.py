"""SSH key management and the git host connectivity check."""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from ..config import Settings
from ..errors import SetupError
from .proc_utils import run

logger = logging.getLogger(__name__)

SSH_KEY_TYPE = "ed25519"
SSH_KEY_FILE = "id_ed25519"
SSH_TEST_ARGS = ["-T", "-o", "BatchMode=yes", "-o", "StrictHostKeyChecking=no"]


def parse_ssh_output(output: str) -> Tuple[bool, str]:
    """Find "Hi <user>! You've successfully authenticated" in ``ssh -T`` output."""
    for line in output.splitlines():
        if "successfully authenticated" in line:
            fields = line.split()
            username = fields[1].rstrip("!") if len(fields) > 1 else ""
            return True, username
    return False, ""


class SshService:
    def __init__(self, settings: Settings):
        self.host = settings.git_host
        self.debug = settings.debug
        self._debug_dir: Optional[Path] = None

    def ssh_dir(self) -> Path:
        if self.debug:
            # Never touch the operator's real keys while debugging.
            if self._debug_dir is None:
                self._debug_dir = Path(tempfile.mkdtemp(prefix="bas-ssh-"))
                logger.info("Using temporary SSH directory %s", self._debug_dir)
            return self._debug_dir

        path = Path.home() / ".ssh"
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
        return path

    @property
    def key_path(self) -> Path:
        return self.ssh_dir() / SSH_KEY_FILE

    async def ensure_known_host(self) -> None:
        """Replace any stale host key for the git host with a fresh scan."""
        known_hosts = self.ssh_dir() / "known_hosts"
        await run(["ssh-keygen", "-f", str(known_hosts), "-R", self.host])
        scan = await run(["ssh-keyscan", "-t", "ed25519,ecdsa,rsa", self.host], check=True)
        await asyncio.to_thread(_append, known_hosts, scan.stdout)

    async def read_public_key(self) -> Optional[str]:
        pub = self.key_path.with_suffix(".pub")
        try:
            return await asyncio.to_thread(pub.read_text)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SetupError(f"could not read ssh key: {exc}") from exc

    async def generate_key(self) -> str:
        key_path = self.key_path
        logger.info("Generating key at %s", key_path)
        await run(
            ["ssh-keygen", "-t", SSH_KEY_TYPE, "-N", "", "-f", str(key_path)],
            check=True,
        )
        public_key = await self.read_public_key()
        if not public_key:
            raise SetupError("ssh-keygen created an empty public key file")
        return public_key

    async def check_connection(self) -> Tuple[bool, str, str]:
        """Returns (authenticated, username, raw output).

        The host answers ``ssh -T`` with a nonzero status even on success, so
        only the output is inspected.
        """
        result = await run(["ssh", *SSH_TEST_ARGS, f"git@{self.host}"])
        output = result.output
        authenticated, username = parse_ssh_output(output)
        logger.info("ssh check: authenticated=%s username=%s", authenticated, username)
        return authenticated, username, output


def _append(path: Path, text: str) -> None:
    fd = os.open(path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, 0o644)
    with os.fdopen(fd, "a") as fh:
        fh.write(text)
