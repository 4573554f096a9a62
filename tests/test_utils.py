import argparse
import logging
from unittest.mock import AsyncMock

import pytest

from bas import logging_utils
from bas.config import Settings
from bas.errors import CommandError
from bas.utils import api_utils, gpu_utils
from bas.utils.proc_utils import CmdResult, run
from bas.utils.ssh_utils import parse_ssh_output


def test_parse_ssh_success():
    out = "Hi octocat! You've successfully authenticated, but GitHub does not provide shell access."
    assert parse_ssh_output(out) == (True, "octocat")


def test_parse_ssh_failure():
    assert parse_ssh_output("git@github.com: Permission denied (publickey).") == (False, "")


def test_settings_from_env():
    args = argparse.Namespace(dotfiles="/srv/dots", profiles="p.yaml")
    s = Settings.from_env({"DEBUG": "", "BAS_GIT_HOST": "git.example.com", "BAS_LOG_FILE": "/tmp/bas.log"}, args)
    assert s.debug
    assert s.git_host == "git.example.com"
    assert s.log_path == "/tmp/bas.log"
    assert s.default_dotfiles == "/srv/dots"
    assert s.profiles_path == "p.yaml"


def test_settings_defaults():
    s = Settings.from_env({})
    assert not s.debug
    assert s.git_host == "github.com"
    assert s.default_dotfiles.endswith("Developer/dotfiles")
    assert s.profiles_path is None


def test_configure_logging_is_idempotent(tmp_path, monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(root, "_bas_configured", False, raising=False)
    log_file = str(tmp_path / "debug.log")

    assert logging_utils.configure_logging(True, log_file) == log_file
    assert logging_utils.configure_logging(True, "elsewhere.log") == log_file
    assert len(root.handlers) == 1
    root.handlers[0].close()


@pytest.mark.asyncio
async def test_run_missing_executable():
    with pytest.raises(CommandError) as info:
        await run(["/nonexistent/bas-test-binary"])
    assert info.value.returncode == 127


@pytest.mark.asyncio
async def test_run_check_raises_on_nonzero():
    with pytest.raises(CommandError):
        await run(["sh", "-c", "echo nope >&2; exit 2"], check=True)
    result = await run(["sh", "-c", "echo out; echo err >&2; exit 2"])
    assert result.returncode == 2
    assert result.output == "out\nerr"


@pytest.mark.asyncio
async def test_gpu_detection(monkeypatch):
    lspci = CmdResult(["lspci"], 0, "01:00.0 VGA compatible controller: NVIDIA Corporation GA104", "")
    monkeypatch.setattr(gpu_utils, "run", AsyncMock(return_value=lspci))
    assert await gpu_utils.has_nvidia_gpu() is True

    monkeypatch.setattr(gpu_utils, "run", AsyncMock(side_effect=CommandError(["lspci"], 127)))
    assert await gpu_utils.has_nvidia_gpu() is False


def test_driver_install_command():
    argv = gpu_utils.driver_install_argv()
    assert argv[:5] == ["sudo", "pacman", "-S", "--noconfirm", "--needed"]
    assert "nvidia-dkms" in argv


@pytest.mark.asyncio
async def test_key_registration(monkeypatch):
    monkeypatch.setattr(
        api_utils,
        "fetch_account_keys",
        AsyncMock(return_value=["ssh-ed25519 AAAAC3Nza", "ssh-rsa AAAAB3"]),
    )
    assert await api_utils.is_key_registered("octocat", "ssh-ed25519 AAAAC3Nza me@host") is True
    assert await api_utils.is_key_registered("octocat", "ssh-ed25519 OTHER me@host") is False
    assert await api_utils.is_key_registered("", "ssh-ed25519 AAAAC3Nza") is None
