"""Launch a process and stream its output back one line per message.

``start_process`` spawns the child and returns ``ProcessStarted`` straight
away. Two reader tasks copy stdout and stderr lines into one bounded queue and
a third task closes the queue once both readers hit EOF. The owning stage
answers every ``ProcessOutput`` with exactly one ``read_line`` command; the
``read_line`` that finds the queue closed is the only caller of ``wait()``.
Waiting any earlier could deadlock on a full pipe, and waiting twice would
reap twice.
"""

import asyncio
import logging
import os
import re
from asyncio.subprocess import PIPE
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from ..errors import CommandError, ensure
from .messages import Stage, StageEvent

logger = logging.getLogger(__name__)

LINE_BUFFER = 128
READ_CHUNK = 64 * 1024
MAX_LINE = 64 * 1024
LINE_BREAK = re.compile(rb"\r\n|\r|\n")

_CLOSED = object()


class ProcessHandle:
    """One child process plus the channel its output lines arrive on."""

    def __init__(self, process: asyncio.subprocess.Process, argv: Sequence[str], maxsize: int = LINE_BUFFER):
        self.process = process
        self.argv = list(argv)
        self.lines: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.waited = False
        self._tasks = []

    @property
    def pid(self) -> int:
        return self.process.pid

    def start_readers(self) -> None:
        readers = [
            asyncio.create_task(self._pump(self.process.stdout, "stdout")),
            asyncio.create_task(self._pump(self.process.stderr, "stderr")),
        ]
        self._tasks = readers + [asyncio.create_task(self._close_after(readers))]

    async def _pump(self, stream: asyncio.StreamReader, name: str) -> None:
        """Copy lines from one pipe until EOF.

        Reads fixed-size chunks rather than using readline(), so a line of any
        length keeps the pipe draining. A carriage return ends a line too, so
        progress bars arrive as one line per update. A line longer than
        MAX_LINE is delivered in MAX_LINE pieces.
        """
        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            data = pending + chunk
            # Hold back a trailing \r: it may be the first half of \r\n.
            held = b"\r" if data.endswith(b"\r") else b""
            if held:
                data = data[:-1]
            *complete, rest = LINE_BREAK.split(data)
            for raw in complete:
                await self._put(raw, name)
            while len(rest) >= MAX_LINE:
                await self._put(rest[:MAX_LINE], name)
                rest = rest[MAX_LINE:]
            pending = rest + held
        if pending:
            await self._put(pending[:-1] if pending.endswith(b"\r") else pending, name)

    async def _put(self, raw: bytes, name: str) -> None:
        line = raw.decode(errors="replace")
        logger.debug("[%d %s] %s", self.pid, name, line)
        await self.lines.put(line)

    async def _close_after(self, readers) -> None:
        results = await asyncio.gather(*readers, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Reader for pid %d failed: %r", self.pid, result)
        await self.lines.put(_CLOSED)

    async def next_line(self) -> Optional[str]:
        """Next output line, or None once the channel has closed."""
        if self.closed:
            return None
        item = await self.lines.get()
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    async def wait(self) -> int:
        ensure(self.closed, f"wait() on pid {self.pid} before its output was drained")
        ensure(not self.waited, f"wait() on pid {self.pid} called twice")
        self.waited = True
        returncode = await self.process.wait()
        logger.info("Process %d exited with %d", self.pid, returncode)
        return returncode

    def __deepcopy__(self, memo):
        # Shared resource, not state: snapshots keep the same handle.
        return self

    def __repr__(self):
        return f"ProcessHandle(pid={self.pid}, argv={self.argv!r})"


@dataclass(frozen=True)
class ProcessStarted(StageEvent):
    handle: ProcessHandle


@dataclass(frozen=True)
class ProcessOutput(StageEvent):
    handle: ProcessHandle
    line: str


@dataclass(frozen=True)
class ProcessExited(StageEvent):
    returncode: Optional[int]
    err: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.err is None and self.returncode == 0


def start_process(
    argv: Sequence[str],
    stage: Stage,
    origin: Any,
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    maxsize: int = LINE_BUFFER,
):
    """Command that spawns ``argv`` and reports ``ProcessStarted``."""
    argv = list(argv)

    async def _start():
        logger.info("Starting %s (cwd=%s)", argv, cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=PIPE,
                stderr=PIPE,
                cwd=cwd,
                env=dict(os.environ, **(env or {})),
            )
        except OSError as exc:
            logger.error("Could not start %s: %s", argv, exc)
            return ProcessExited(stage, origin, returncode=None, err=CommandError(argv, 127, str(exc)))

        handle = ProcessHandle(process, argv, maxsize=maxsize)
        handle.start_readers()
        return ProcessStarted(stage, origin, handle=handle)

    _start.__qualname__ = f"start_process({argv[0]})"
    return _start


def read_line(handle: ProcessHandle, stage: Stage, origin: Any):
    """Command that pulls one line, or reaps the process once output is done."""

    async def _read():
        line = await handle.next_line()
        if line is not None:
            return ProcessOutput(stage, origin, handle=handle, line=line)
        returncode = await handle.wait()
        err = None
        if returncode != 0:
            err = CommandError(handle.argv, returncode)
        return ProcessExited(stage, origin, returncode=returncode, err=err)

    _read.__qualname__ = f"read_line({handle.pid})"
    return _read
