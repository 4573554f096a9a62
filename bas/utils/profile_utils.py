"""Machine profiles: definitions file, package lists and installers."""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from ..config import PROFILES_FILE_NAME, Settings
from ..errors import CommandError, ConfigError, SetupError, UnsupportedPlatformError
from .os_utils import OSInfo, current_os_info
from .proc_utils import run

logger = logging.getLogger(__name__)

YAY_BOOTSTRAP = """
set -e
echo "--- Installing dependencies for yay (git, base-devel) ---"
sudo pacman -S --noconfirm --needed git base-devel
echo "--- Cloning yay from AUR ---"
cd /tmp
rm -rf yay
git clone https://aur.archlinux.org/yay.git
echo "--- Building and installing yay ---"
cd yay
makepkg -si --noconfirm
cd /tmp
rm -rf yay
echo "--- yay installation complete! ---"
"""

BREW_BOOTSTRAP = """
set -e
if ! command -v brew >/dev/null 2>&1; then
  echo '--- Installing Homebrew ---'
  NONINTERACTIVE=1 /bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"
fi
test -x /opt/homebrew/bin/brew && eval "$(/opt/homebrew/bin/brew shellenv)"
test -x /usr/local/bin/brew && eval "$(/usr/local/bin/brew shellenv)"
echo '--- Ensuring prerequisites on macOS ---'
brew install stow
"""

BREW_INSTALL = (
    "brew list --formula {pkg} >/dev/null 2>&1 || brew install {pkg} "
    "|| brew list --cask {pkg} >/dev/null 2>&1 || brew install --cask {pkg}"
)


@dataclass(frozen=True)
class PostInstall:
    command: str
    description: str = ""
    working_dir: str = ""


@dataclass(frozen=True)
class Profile:
    name: str
    description: str = ""
    path: str = ""
    os_family: str = ""
    os_distro: str = ""
    stow_dirs: tuple = ()
    roles: tuple = ()
    post_install: Optional[PostInstall] = None

    def applies_to(self, info: OSInfo) -> bool:
        if self.os_family and self.os_family != info.family:
            return False
        if self.os_distro and self.os_distro != info.distro:
            return False
        return True

    @property
    def role_list(self) -> str:
        return ",".join(r.strip() for r in self.roles if r.strip())


def parse_profiles(data) -> List[Profile]:
    """Build profiles from the ``profiles:`` list of a parsed definitions file."""
    if data is None:
        return []
    if not isinstance(data, dict):
        raise ConfigError("profiles file must contain a mapping")
    records = data.get("profiles") or []
    if not isinstance(records, list):
        raise ConfigError("'profiles' must be a list")

    profiles = []
    for i, rec in enumerate(records):
        if not isinstance(rec, dict) or not rec.get("name"):
            raise ConfigError(f"profile #{i + 1} needs at least a name")
        post = rec.get("post_install")
        if post is not None:
            if not isinstance(post, dict) or not post.get("command"):
                raise ConfigError(f"profile '{rec['name']}': post_install needs a command")
            post = PostInstall(
                command=str(post["command"]),
                description=str(post.get("description", "")),
                working_dir=str(post.get("working_dir", "")),
            )
        profiles.append(
            Profile(
                name=str(rec["name"]),
                description=str(rec.get("description", "")),
                path=str(rec.get("path", "")),
                os_family=str(rec.get("os_family", "")),
                os_distro=str(rec.get("os_distro", "")),
                stow_dirs=tuple(str(d) for d in rec.get("stow_dirs") or ()),
                roles=tuple(str(r) for r in rec.get("roles") or ()),
                post_install=post,
            )
        )
    return profiles


def load_profiles(path: Path) -> Optional[List[Profile]]:
    """Read the definitions file. None when it does not exist."""
    if not path.exists():
        return None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid {path.name} format: {e}") from e
    except OSError as e:
        raise ConfigError(f"could not read {path}: {e}") from e
    return parse_profiles(data)


def read_package_list(path: Path) -> List[str]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"could not open package list {path}: {e}") from e
    packages = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            packages.append(line)
    return packages


class ProfileService:
    def __init__(self, settings: Settings, os_info: Optional[OSInfo] = None):
        self.profiles_path = settings.profiles_path
        self.os_info = os_info or current_os_info()

    def definitions_path(self, repo_path: str) -> Path:
        if self.profiles_path:
            return Path(self.profiles_path).expanduser()
        return Path(repo_path).expanduser() / PROFILES_FILE_NAME

    async def load_profiles(self, repo_path: str) -> List[Profile]:
        """Profiles applicable to this machine. Empty when no file exists."""
        if not self.profiles_path:
            repo = Path(repo_path).expanduser()
            if not repo_path or not repo.exists():
                raise ConfigError(f"dotfiles path does not exist: {repo_path}")
            if not repo.is_dir():
                raise ConfigError(f"dotfiles path is not a directory: {repo_path}")

        path = self.definitions_path(repo_path)
        profiles = await asyncio.to_thread(load_profiles, path)
        if profiles is None:
            logger.info("No profiles file at %s", path)
            return []
        applicable = [p for p in profiles if p.applies_to(self.os_info)]
        logger.info("Loaded %d profiles, %d applicable", len(profiles), len(applicable))
        return applicable

    async def load_packages(self, repo_path: str, profile: Profile) -> List[str]:
        path = Path(repo_path).expanduser() / profile.path
        return await asyncio.to_thread(read_package_list, path)

    @property
    def package_manager(self) -> str:
        if self.os_info.family == "darwin":
            return "brew"
        if self.os_info.arch_like:
            return "yay"
        raise UnsupportedPlatformError(
            f"unsupported platform for package install: {self.os_info.family} {self.os_info.distro}".strip()
        )

    async def has_package_manager(self) -> bool:
        manager = self.package_manager
        return await asyncio.to_thread(shutil.which, manager) is not None

    def bootstrap_argv(self) -> list:
        script = BREW_BOOTSTRAP if self.package_manager == "brew" else YAY_BOOTSTRAP
        return ["bash", "-c", script]

    def install_argv(self, pkg: str) -> list:
        if self.package_manager == "brew":
            return ["bash", "-lc", BREW_INSTALL.format(pkg=pkg)]
        return ["yay", "-S", "--noconfirm", "--needed", pkg]

    async def install_package(self, pkg: str) -> str:
        """Install one package, returning its output. Raises CommandError."""
        result = await run(self.install_argv(pkg), check=True)
        return result.output

    async def apply_links(self, repo_path: str, stow_dirs) -> None:
        if not stow_dirs:
            logger.info("No directories specified to stow.")
            return
        argv = ["stow", "-t", str(Path.home()), "-R", *stow_dirs]
        try:
            await run(argv, check=True, cwd=str(Path(repo_path).expanduser()))
        except CommandError as e:
            raise SetupError(f"stow failed: {e}") from e

    def post_install_cwd(self, repo_path: str, post: PostInstall) -> str:
        return str(Path(repo_path).expanduser() / post.working_dir)
