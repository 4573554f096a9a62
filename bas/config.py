"""Runtime settings resolved once at startup and passed down explicitly."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_LOG_PATH = "debug.log"
DEFAULT_GIT_HOST = "github.com"
PROFILES_FILE_NAME = "bas_settings.yaml"


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    log_path: str = DEFAULT_LOG_PATH
    git_host: str = DEFAULT_GIT_HOST
    default_dotfiles: str = ""
    profiles_path: Optional[str] = None
    line_buffer: int = 128

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ, args=None) -> "Settings":
        """Build settings from the environment and parsed CLI arguments.

        DEBUG only needs to be present; its value is ignored.
        """
        dotfiles = getattr(args, "dotfiles", None) or str(
            Path.home() / "Developer" / "dotfiles"
        )
        return cls(
            debug="DEBUG" in environ,
            log_path=environ.get("BAS_LOG_FILE", DEFAULT_LOG_PATH),
            git_host=environ.get("BAS_GIT_HOST", DEFAULT_GIT_HOST),
            default_dotfiles=dotfiles,
            profiles_path=getattr(args, "profiles", None),
        )
