import textwrap
from unittest.mock import AsyncMock

import pytest
import yaml

from bas.config import Settings
from bas.errors import ConfigError, UnsupportedPlatformError
from bas.utils import profile_utils
from bas.utils.os_utils import OSInfo
from bas.utils.profile_utils import (
    ProfileService,
    load_profiles,
    parse_profiles,
    read_package_list,
)

SETTINGS_YAML = textwrap.dedent(
    """
    profiles:
      - name: arch-desktop
        description: Gaming and development
        path: packages/arch.txt
        os_family: linux
        os_distro: arch
        stow_dirs: [zsh, nvim]
        roles: [dev, gaming]
        post_install:
          description: Enable services
          command: ./post.sh
          working_dir: scripts
      - name: mac-laptop
        path: packages/mac.txt
        os_family: darwin
      - name: anywhere
        path: packages/common.txt
    """
)


def test_parse_full_record():
    profiles = parse_profiles(yaml.safe_load(SETTINGS_YAML))
    assert [p.name for p in profiles] == ["arch-desktop", "mac-laptop", "anywhere"]
    desk = profiles[0]
    assert desk.stow_dirs == ("zsh", "nvim")
    assert desk.role_list == "dev,gaming"
    assert desk.post_install.command == "./post.sh"
    assert desk.post_install.working_dir == "scripts"
    assert profiles[1].post_install is None


@pytest.mark.parametrize(
    "data",
    [
        ["not", "a", "mapping"],
        {"profiles": {"name": "x"}},
        {"profiles": [{"description": "no name"}]},
        {"profiles": [{"name": "x", "post_install": {"description": "no command"}}]},
    ],
)
def test_parse_rejects_malformed(data):
    with pytest.raises(ConfigError):
        parse_profiles(data)


def test_load_missing_file_returns_none(tmp_path):
    assert load_profiles(tmp_path / "bas_settings.yaml") is None


def test_load_invalid_yaml(tmp_path):
    path = tmp_path / "bas_settings.yaml"
    path.write_text("profiles: [unclosed\n")
    with pytest.raises(ConfigError):
        load_profiles(path)


def test_package_list_skips_blanks_and_comments(tmp_path):
    path = tmp_path / "pkgs.txt"
    path.write_text("# editors\nneovim\n\n  git  \n#disabled\n")
    assert read_package_list(path) == ["neovim", "git"]


def test_package_list_missing(tmp_path):
    with pytest.raises(ConfigError):
        read_package_list(tmp_path / "missing.txt")


def test_os_filter():
    profiles = parse_profiles(yaml.safe_load(SETTINGS_YAML))
    arch = OSInfo("linux", "arch")
    ubuntu = OSInfo("linux", "ubuntu")
    mac = OSInfo("darwin", "macos")
    assert [p.name for p in profiles if p.applies_to(arch)] == ["arch-desktop", "anywhere"]
    assert [p.name for p in profiles if p.applies_to(ubuntu)] == ["anywhere"]
    assert [p.name for p in profiles if p.applies_to(mac)] == ["mac-laptop", "anywhere"]


@pytest.mark.asyncio
async def test_service_filters_profiles_from_repo(tmp_path):
    (tmp_path / "bas_settings.yaml").write_text(SETTINGS_YAML)
    service = ProfileService(Settings(), os_info=OSInfo("darwin", "macos"))
    profiles = await service.load_profiles(str(tmp_path))
    assert [p.name for p in profiles] == ["mac-laptop", "anywhere"]


@pytest.mark.asyncio
async def test_service_without_file_returns_empty(tmp_path):
    service = ProfileService(Settings(), os_info=OSInfo("linux", "arch"))
    assert await service.load_profiles(str(tmp_path)) == []


@pytest.mark.asyncio
async def test_service_rejects_missing_repo(tmp_path):
    service = ProfileService(Settings(), os_info=OSInfo("linux", "arch"))
    with pytest.raises(ConfigError):
        await service.load_profiles(str(tmp_path / "nope"))


@pytest.mark.asyncio
async def test_explicit_profiles_path_wins(tmp_path):
    custom = tmp_path / "custom.yaml"
    custom.write_text(SETTINGS_YAML)
    service = ProfileService(Settings(profiles_path=str(custom)), os_info=OSInfo("linux", "ubuntu"))
    profiles = await service.load_profiles("")
    assert [p.name for p in profiles] == ["anywhere"]


def test_package_manager_per_platform():
    assert ProfileService(Settings(), OSInfo("darwin", "macos")).package_manager == "brew"
    yay = ProfileService(Settings(), OSInfo("linux", "endeavouros"))
    assert yay.package_manager == "yay"
    assert yay.install_argv("git") == ["yay", "-S", "--noconfirm", "--needed", "git"]
    with pytest.raises(UnsupportedPlatformError):
        ProfileService(Settings(), OSInfo("linux", "ubuntu")).package_manager


@pytest.mark.asyncio
async def test_apply_links_runs_stow(monkeypatch, tmp_path):
    run = AsyncMock()
    monkeypatch.setattr(profile_utils, "run", run)
    service = ProfileService(Settings(), OSInfo("linux", "arch"))

    await service.apply_links(str(tmp_path), ("zsh", "nvim"))

    argv = run.await_args.args[0]
    assert argv[0] == "stow" and argv[-3:] == ["-R", "zsh", "nvim"]
    assert run.await_args.kwargs["cwd"] == str(tmp_path)


@pytest.mark.asyncio
async def test_apply_links_without_dirs_is_noop(monkeypatch):
    run = AsyncMock()
    monkeypatch.setattr(profile_utils, "run", run)
    await ProfileService(Settings(), OSInfo("linux", "arch")).apply_links("/r", ())
    run.assert_not_awaited()
