import asyncio
import logging
import os
import shlex
from asyncio.subprocess import PIPE
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


async def run(
    argv: Sequence[str],
    *,
    check: bool = False,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CmdResult:
    """Run a command to completion and capture its output.

    A missing executable is reported as CommandError with status 127. With
    ``check`` a nonzero exit raises CommandError too.
    """
    argv = list(argv)
    logger.info("CMD %s", fmt_argv(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except OSError as exc:
        raise CommandError(argv, 127, str(exc)) from exc

    stdout, stderr = await proc.communicate()
    result = CmdResult(
        argv=argv,
        returncode=proc.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if result.stdout:
        logger.debug("STDOUT %s", result.stdout.strip())
    if result.stderr:
        logger.debug("STDERR %s", result.stderr.strip())

    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.output)
    return result
