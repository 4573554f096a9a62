from unittest.mock import AsyncMock, MagicMock

import pytest

from bas.config import Settings
from bas.engine.messages import Stage
from bas.engine.orchestrator import Orchestrator
from bas.screens.auth_screen import AuthScreen
from bas.screens.driver_screen import DriverScreen
from bas.screens.menu_screen import MenuScreen
from bas.screens.profile_screen import ProfileScreen
from bas.screens.repo_screen import RepoScreen


@pytest.fixture
def settings(tmp_path):
    return Settings(default_dotfiles=str(tmp_path / "dotfiles"))


@pytest.fixture
def ssh():
    ssh = MagicMock()
    ssh.host = "github.com"
    ssh.ensure_known_host = AsyncMock()
    ssh.read_public_key = AsyncMock(return_value="ssh-ed25519 AAAAC3Nza me@host\n")
    ssh.generate_key = AsyncMock(return_value="ssh-ed25519 AAAAC3Nza me@host\n")
    ssh.check_connection = AsyncMock(return_value=(True, "octocat", "Hi octocat!"))
    return ssh


@pytest.fixture
def repo_service():
    return MagicMock()


@pytest.fixture
def profile_service():
    return MagicMock()


@pytest.fixture
def orchestrator(ssh, repo_service, profile_service):
    screens = {
        Stage.MENU: MenuScreen(ssh),
        Stage.AUTH: AuthScreen(ssh),
        Stage.REPO: RepoScreen(repo_service, default_dest="/home/me/dotfiles"),
        Stage.DRIVER: DriverScreen(),
        Stage.PROFILE: ProfileScreen(profile_service),
    }
    return Orchestrator(screens)
