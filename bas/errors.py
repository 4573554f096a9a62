"""Error types shared by the wizard stages."""

import shlex


class SetupError(Exception):
    """Recoverable failure shown to the operator by the owning stage."""


class CommandError(SetupError):
    """An external command could not be started or exited nonzero."""

    def __init__(self, argv, returncode: int, output: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(self.argv, returncode, output)

    def __str__(self):
        cmd = " ".join(shlex.quote(a) for a in self.argv)
        msg = f"command failed ({self.returncode}): {cmd}"
        if self.output.strip():
            msg += f"\n{self.output.strip()}"
        return msg


class RepoNotFoundError(SetupError):
    pass


class DestinationExistsError(SetupError):
    """Destination is a non-empty directory. Soft: the stage offers to reuse it."""


class DestinationInvalidError(SetupError):
    pass


class ConfigError(SetupError):
    pass


class UnsupportedPlatformError(SetupError):
    pass


class InvariantViolation(RuntimeError):
    """A programming or environment error. Contained by the recovery shield."""


def ensure(condition, message: str) -> None:
    if not condition:
        raise InvariantViolation(message)
