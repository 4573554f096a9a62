"""Command scheduling and the single-consumer update loop.

A command is a niladic coroutine function. Running it yields one message
(or None, or further commands to schedule). Every scheduled command runs as
its own asyncio task and reports back only through the message queue, so the
update loop never blocks on I/O.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set, Union

from .messages import CommandFailed, Message, QuitMsg

logger = logging.getLogger(__name__)

Command = Callable[[], Awaitable[Union[Message, "Batch", Callable, None]]]


class Batch:
    """Commands fired together. Their results arrive in no particular order."""

    def __init__(self, *commands: Command):
        self.commands = tuple(commands)

    def __iter__(self):
        return iter(self.commands)

    def __len__(self):
        return len(self.commands)

    def __repr__(self):
        return f"Batch({', '.join(command_name(c) for c in self.commands)})"


def batch(*commands):
    """Combine commands, flattening nested batches and dropping Nones."""
    flat = []
    for cmd in commands:
        if cmd is None:
            continue
        if isinstance(cmd, Batch):
            flat.extend(cmd.commands)
        else:
            flat.append(cmd)
    if not flat:
        return None
    if len(flat) == 1:
        return flat[0]
    return Batch(*flat)


def emit(msg: Message) -> Command:
    """A command that immediately yields ``msg``."""

    async def _emit():
        return msg

    _emit.__qualname__ = f"emit({type(msg).__name__})"
    return _emit


def command_name(cmd) -> str:
    return getattr(cmd, "__qualname__", None) or repr(cmd)


class Program:
    """Runs a model's update loop against a message queue.

    ``model`` needs ``init()``, ``update(msg)`` and ``view()``. ``on_render``
    receives the view after every processed message.
    """

    def __init__(
        self,
        model,
        on_render: Optional[Callable[[str], None]] = None,
        on_quit: Optional[Callable[[], None]] = None,
    ):
        self.model = model
        self.on_render = on_render
        self.on_quit = on_quit
        self.messages: "asyncio.Queue[Message]" = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self.running = False

    def send(self, msg: Message) -> None:
        self.messages.put_nowait(msg)

    def schedule(self, cmd) -> None:
        if cmd is None:
            return
        if isinstance(cmd, Batch):
            for member in cmd:
                self.schedule(member)
            return
        task = asyncio.get_running_loop().create_task(self._execute(cmd))
        # The loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, cmd) -> None:
        name = command_name(cmd)
        try:
            result = await cmd()
        except Exception as exc:
            logger.exception("Command %s raised", name)
            self.send(CommandFailed(command=name, error=exc))
            return

        if result is None:
            return
        if isinstance(result, Message):
            self.send(result)
        else:
            # A command may hand back follow-up commands instead of a message.
            self.schedule(result)

    async def run(self) -> None:
        self.running = True
        logger.info("Program starting")
        self.schedule(self.model.init())
        self._render()

        while True:
            msg = await self.messages.get()
            if isinstance(msg, QuitMsg):
                break
            self.schedule(self.model.update(msg))
            self._render()

        self.running = False
        logger.info("Program stopped (%d commands still running)", len(self._tasks))
        if self.on_quit is not None:
            self.on_quit()

    def _render(self) -> None:
        if self.on_render is not None:
            self.on_render(self.model.view())

    @property
    def pending(self) -> int:
        return len(self._tasks)
