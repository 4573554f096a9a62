"""Repository check, destination checks and clone."""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..config import Settings
from ..engine.join import fan_out
from ..errors import (
    CommandError,
    DestinationExistsError,
    DestinationInvalidError,
    RepoNotFoundError,
    SetupError,
)
from .proc_utils import run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Validation:
    err: Optional[Exception] = None
    dir_exists: bool = False


def combine_validation(results: List[Optional[Exception]]) -> Validation:
    """Hard failures win; a non-empty destination alone is only a soft flag."""
    dir_exists = False
    for result in results:
        if isinstance(result, DestinationExistsError):
            dir_exists = True
        elif isinstance(result, Exception):
            return Validation(err=result)
    return Validation(dir_exists=dir_exists)


def check_destination(dest: str) -> None:
    """Raise unless ``dest`` can be cloned into.

    A missing destination is fine when its parent can be created and written.
    """
    path = Path(dest).expanduser()
    try:
        is_dir = path.is_dir()
        exists = path.exists()
    except OSError as exc:
        raise DestinationInvalidError(f"could not stat destination path: {exc}") from exc

    if not exists:
        parent = path.parent
        try:
            parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            raise DestinationInvalidError(f"could not create parent directory: {exc}") from exc
        try:
            fd, scratch = tempfile.mkstemp(prefix=".perm-check-", dir=parent)
        except OSError as exc:
            raise DestinationInvalidError(f"no write permissions for {parent}") from exc
        os.close(fd)
        os.unlink(scratch)
        return

    if not is_dir:
        raise DestinationInvalidError("destination path exists but is not a directory")

    try:
        entries = any(path.iterdir())
    except OSError as exc:
        raise DestinationInvalidError(f"could not read destination directory: {exc}") from exc
    if entries:
        raise DestinationExistsError("destination directory already exists and is not empty")


class RepoService:
    def __init__(self, settings: Settings):
        self.host = settings.git_host

    async def check_repo_exists(self, repo: str) -> None:
        logger.info("checking if repo exists: %s", repo)
        if len(repo.split("/")) != 2:
            raise RepoNotFoundError(
                f"invalid repository format, expected 'username/repo', got: {repo}"
            )
        url = f"ssh://git@{self.host}/{repo}.git"
        try:
            await run(["git", "ls-remote", url], check=True)
        except CommandError as exc:
            raise RepoNotFoundError(f"repository not found or access denied: {exc}") from exc

    async def check_destination(self, dest: str) -> None:
        logger.info("checking destination: %s", dest)
        await asyncio.to_thread(check_destination, dest)

    async def validate(self, repo: str, dest: str) -> Validation:
        return await fan_out(
            [
                lambda: self.check_repo_exists(repo),
                lambda: self.check_destination(dest),
            ],
            combine_validation,
        )

    async def clone(self, repo: str, dest: str) -> None:
        url = f"git@{self.host}:{repo}.git"
        try:
            await run(["git", "clone", url, str(Path(dest).expanduser())], check=True)
        except CommandError as exc:
            raise SetupError(f"Failed to clone repo: {exc}") from exc
