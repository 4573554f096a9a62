import sys
from unittest.mock import MagicMock

import pytest

from bas.engine.messages import KeyMsg, StageCancelled, StageFinished
from bas.engine.stream import ProcessExited, ProcessOutput
from bas.errors import CommandError
from bas.screens import driver_screen
from bas.screens.driver_screen import DriverScreen, Phase


@pytest.fixture
def screen():
    screen = DriverScreen()
    screen.init()
    return screen


def test_toggle_selection(screen):
    assert screen.state.confirm_yes
    screen.update(KeyMsg("down"))
    assert not screen.state.confirm_yes
    screen.update(KeyMsg("k"))
    assert screen.state.confirm_yes


@pytest.mark.asyncio
async def test_answering_no_cancels(screen):
    screen.update(KeyMsg("down"))
    assert await screen.update(KeyMsg("enter"))() == StageCancelled()


@pytest.mark.asyncio
async def test_install_streams_output_to_success(screen, monkeypatch):
    argv = [sys.executable, "-c", "print('resolving dependencies'); print('installing nvidia-dkms')"]
    monkeypatch.setattr(driver_screen, "driver_install_argv", lambda: argv)

    cmd = screen.update(KeyMsg("enter"))
    assert screen.phase == Phase.INSTALLING
    while cmd is not None:
        cmd = screen.update(await cmd())

    assert screen.phase == Phase.SUCCESS
    assert screen.state.log == ["resolving dependencies", "installing nvidia-dkms"]
    assert await screen.update(KeyMsg("enter"))() == StageFinished()


def test_failed_install_shows_error(screen):
    screen.state.nav.push(Phase.INSTALLING)
    err = CommandError(["sudo", "pacman"], 1)
    screen.update(ProcessExited(screen.stage, screen.origin, returncode=1, err=err))
    assert screen.phase == Phase.ERROR
    assert screen.state.err is err
    assert "Installation failed" in screen.view()


def test_stale_output_keeps_draining(screen):
    handle = MagicMock()
    cmd = screen.update(ProcessOutput(screen.stage, (Phase.INSTALLING, screen.state.run), handle=handle, line="late"))
    assert callable(cmd)
    assert screen.state.log == []
    assert screen.phase == Phase.CONFIRMATION
