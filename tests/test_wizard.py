from unittest.mock import AsyncMock

import pytest

from bas import wizard
from bas.config import Settings
from bas.engine.messages import Stage
from bas.utils.ssh_utils import SshService


def test_build_orchestrator_registers_every_stage():
    orch = wizard.build_orchestrator(Settings(default_dotfiles="/home/me/dotfiles"))
    assert list(orch.screens) == list(Stage)
    assert orch.nav.current() == Stage.MENU
    assert orch.screens[Stage.REPO].dest_path == "/home/me/dotfiles"


@pytest.fixture
def quiet_main(monkeypatch):
    monkeypatch.setattr(wizard, "configure_logging", lambda debug, path: None)
    monkeypatch.setattr(wizard.BootstrapWizard, "run", lambda self: None)


def test_main_exits_zero(quiet_main):
    assert wizard.main(["--skip-privilege-check"]) == 0


def test_main_fails_without_privileges(quiet_main, monkeypatch):
    monkeypatch.setattr(wizard, "ensure_privileges", AsyncMock(return_value=False))
    assert wizard.main([]) == 1


@pytest.mark.asyncio
async def test_keys_reach_the_menu(monkeypatch):
    monkeypatch.setattr(wizard, "has_nvidia_gpu", AsyncMock(return_value=False))
    monkeypatch.setattr(SshService, "check_connection", AsyncMock(return_value=(False, "", "")))
    app = wizard.BootstrapWizard(Settings())

    async with app.run_test() as pilot:
        await pilot.press("down")
        await pilot.pause(0.2)
        menu = app.shield.model.state_of(Stage.MENU)
        assert menu.cursor == 1
        assert "Git Host Authentication" in app.shield.last_view
