import asyncio

import pytest

from bas.engine.bus import Batch, Program, batch, emit
from bas.engine.messages import CommandFailed, QuitMsg, TickMsg


def test_batch_flattens_and_drops_none():
    a, b, c = emit(TickMsg()), emit(TickMsg()), emit(QuitMsg())
    assert batch() is None
    assert batch(None, a) is a
    combined = batch(a, None, Batch(b, c))
    assert isinstance(combined, Batch)
    assert combined.commands == (a, b, c)


@pytest.mark.asyncio
async def test_emit_yields_message():
    assert await emit(TickMsg())() == TickMsg()


class RecordingModel:
    def __init__(self, init_cmd):
        self.init_cmd = init_cmd
        self.seen = []

    def init(self):
        return self.init_cmd

    def update(self, msg):
        self.seen.append(msg)
        if isinstance(msg, CommandFailed):
            return emit(QuitMsg())
        return None

    def view(self):
        return f"{len(self.seen)} messages"


@pytest.mark.asyncio
async def test_failing_command_becomes_command_failed(caplog):
    async def broken():
        raise ValueError("boom")

    model = RecordingModel(broken)
    frames, quits = [], []
    program = Program(model, on_render=frames.append, on_quit=lambda: quits.append(True))

    await asyncio.wait_for(program.run(), timeout=5)

    assert len(model.seen) == 1
    failed = model.seen[0]
    assert isinstance(failed.error, ValueError)
    assert "broken" in failed.command
    assert quits == [True]
    assert frames == ["0 messages", "1 messages"]
    assert any(r.exc_info for r in caplog.records if r.name == "bas.engine.bus")


@pytest.mark.asyncio
async def test_commands_may_return_follow_up_commands():
    async def first():
        return batch(emit(TickMsg()), emit(TickMsg()))

    class Model(RecordingModel):
        def update(self, msg):
            self.seen.append(msg)
            if len(self.seen) == 2:
                return emit(QuitMsg())
            return None

    model = Model(first)
    await asyncio.wait_for(Program(model).run(), timeout=5)
    assert model.seen == [TickMsg(), TickMsg()]
