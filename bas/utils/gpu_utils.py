import logging

from ..errors import CommandError
from .proc_utils import run

logger = logging.getLogger(__name__)

DRIVER_PACKAGES = [
    # Core drivers
    "nvidia-dkms",
    "nvidia-utils",
    "lib32-nvidia-utils",
    # Vulkan for Proton
    "vulkan-icd-loader",
    "lib32-vulkan-icd-loader",
    "nvidia-settings",
    # Hardware video acceleration
    "libva-nvidia-driver",
]


async def has_nvidia_gpu() -> bool:
    """Look for an NVIDIA device in ``lspci``. Detection failures count as no GPU."""
    try:
        result = await run(["lspci"], check=True)
    except CommandError as exc:
        logger.warning("gpu check failed: %s", exc)
        return False
    found = "nvidia" in result.stdout.lower()
    logger.info("nvidia gpu %s", "found" if found else "not found")
    return found


def driver_install_argv() -> list:
    return ["sudo", "pacman", "-S", "--noconfirm", "--needed", *DRIVER_PACKAGES]
