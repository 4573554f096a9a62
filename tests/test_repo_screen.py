from unittest.mock import AsyncMock

import pytest

from bas.engine.bus import Batch
from bas.engine.messages import AuthStatus, KeyMsg, StageCancelled, StageFinished
from bas.errors import RepoNotFoundError, SetupError
from bas.screens.repo_screen import CloneResult, Phase, RepoScreen, ValidationResult
from bas.utils.git_utils import Validation


@pytest.fixture
def screen(repo_service):
    screen = RepoScreen(repo_service, default_dest="/home/me/dotfiles")
    screen.init()
    return screen


def type_text(screen, text):
    for ch in text:
        screen.update(KeyMsg(ch, ch))


def test_destination_is_prefilled(screen):
    assert screen.dest_path == "/home/me/dotfiles"
    assert screen.repo_path == ""


def test_auth_status_prefills_repo_only_when_empty(screen):
    screen.update(AuthStatus(authenticated=True, username="octocat"))
    assert screen.repo_path == "octocat/dotfiles"

    screen.state.repo.value = "octocat/other"
    screen.update(AuthStatus(authenticated=True, username="someone"))
    assert screen.repo_path == "octocat/other"


def test_typing_and_focus_switching(screen):
    type_text(screen, "me/dots")
    assert screen.repo_path == "me/dots"
    screen.update(KeyMsg("backspace"))
    assert screen.repo_path == "me/dot"

    screen.update(KeyMsg("tab"))
    assert screen.state.focused == 1
    screen.update(KeyMsg("shift+tab"))
    assert screen.state.focused == 0
    screen.update(KeyMsg("up"))
    assert screen.state.focused == 1


@pytest.mark.parametrize("repo", ["", "octocat/"])
def test_incomplete_input_keeps_phase(screen, repo):
    screen.state.repo.value = repo
    assert screen.update(KeyMsg("enter")) is None
    assert screen.phase == Phase.INPUT
    assert isinstance(screen.state.err, SetupError)


@pytest.mark.asyncio
async def test_submit_starts_exactly_one_validation(screen, repo_service):
    repo_service.validate = AsyncMock(return_value=Validation())
    screen.state.repo.value = "octocat/dotfiles"

    cmd = screen.update(KeyMsg("enter"))

    assert screen.phase == Phase.VALIDATING
    assert callable(cmd) and not isinstance(cmd, Batch)
    msg = await cmd()
    repo_service.validate.assert_awaited_once_with("octocat/dotfiles", "/home/me/dotfiles")
    assert msg == ValidationResult(screen.stage, screen.origin)

    screen.update(msg)
    assert screen.phase == Phase.CONFIRMATION


def test_soft_destination_goes_to_dir_exists(screen):
    screen.state.nav.push(Phase.VALIDATING)
    screen.update(ValidationResult(screen.stage, screen.origin, dir_exists=True))
    assert screen.phase == Phase.DIR_EXISTS


def test_hard_validation_error_returns_to_input(screen):
    err = RepoNotFoundError("repository not found")
    screen.state.nav.push(Phase.VALIDATING)
    screen.update(ValidationResult(screen.stage, screen.origin, err=err))
    assert screen.phase == Phase.INPUT
    assert screen.state.err is err
    assert "repository not found" in screen.view()


def test_stale_validation_result_is_ignored(screen):
    screen.update(ValidationResult(screen.stage, (Phase.VALIDATING, screen.state.run), dir_exists=True))
    assert screen.phase == Phase.INPUT


@pytest.mark.asyncio
async def test_validation_from_an_earlier_submit_is_ignored(screen, repo_service):
    repo_service.validate = AsyncMock(return_value=Validation())
    screen.state.repo.value = "octocat/dotfiles"
    late = await screen.update(KeyMsg("enter"))()
    screen.update(late)
    screen.update(KeyMsg("escape"))
    assert screen.phase == Phase.INPUT

    screen.update(KeyMsg("enter"))
    assert screen.phase == Phase.VALIDATING
    screen.update(late)
    assert screen.phase == Phase.VALIDATING


@pytest.mark.asyncio
async def test_clone_then_finish_with_destination(screen, repo_service):
    repo_service.clone = AsyncMock()
    screen.state.repo.value = "octocat/dotfiles"
    screen.state.nav.push(Phase.CONFIRMATION)

    cmd = screen.update(KeyMsg("enter"))
    assert screen.phase == Phase.CLONING
    screen.update(await cmd())
    assert screen.phase == Phase.CLONE_COMPLETE

    finish = screen.update(KeyMsg("enter"))
    assert await finish() == StageFinished(payload="/home/me/dotfiles")


@pytest.mark.asyncio
async def test_clone_failure_resets_to_input(screen, repo_service):
    repo_service.clone = AsyncMock(side_effect=SetupError("Failed to clone repo"))
    screen.state.repo.value = "octocat/dotfiles"
    screen.state.nav.push(Phase.CONFIRMATION)

    msg = await screen.update(KeyMsg("enter"))()
    assert isinstance(msg, CloneResult)
    screen.update(msg)
    assert screen.state.nav.history == [Phase.INPUT]
    assert isinstance(screen.state.err, SetupError)


def test_confirmation_escape_goes_back_to_input(screen):
    screen.state.nav.push(Phase.VALIDATING)
    screen.state.nav.push(Phase.CONFIRMATION)
    screen.update(KeyMsg("escape"))
    assert screen.state.nav.history == [Phase.INPUT]


@pytest.mark.asyncio
async def test_escape_at_input_cancels(screen):
    assert await screen.update(KeyMsg("escape"))() == StageCancelled()
