import logging
import platform
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ARCH_LIKE = {"arch", "archlinux", "manjaro", "endeavouros", "garuda", "archarm"}


@dataclass(frozen=True)
class OSInfo:
    family: str
    distro: str = ""

    @property
    def arch_like(self) -> bool:
        return self.family == "linux" and self.distro.lower() in ARCH_LIKE


def linux_distro_id() -> str:
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        return ""
    return release.get("ID", "").strip().lower()


def current_os_info() -> OSInfo:
    family = platform.system().lower()
    if family == "linux":
        return OSInfo(family, linux_distro_id())
    if family == "darwin":
        return OSInfo(family, "macos")
    return OSInfo(family)
