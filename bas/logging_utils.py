import logging
import os
from pathlib import Path

from .config import DEFAULT_LOG_PATH

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool, log_path: str = DEFAULT_LOG_PATH) -> str | None:
    """Configure logging for the wizard.

    The terminal belongs to the TUI, so nothing is ever written to the console.
    With debug off every record is discarded; with debug on records go to
    ``log_path`` at DEBUG level.

    Returns the log file path in use, or None when logging is discarded.
    """
    root = logging.getLogger()

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(root, "_bas_configured", False):
        return getattr(root, "_bas_log_path", None)

    chosen: str | None = None
    if debug:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path)
        handler.setFormatter(
            logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        )
        root.setLevel(logging.DEBUG)
        chosen = log_path
    else:
        handler = logging.NullHandler()
        root.setLevel(logging.WARNING)

    root.addHandler(handler)
    setattr(root, "_bas_configured", True)
    setattr(root, "_bas_log_path", chosen)

    logging.getLogger(__name__).info("Logging initialized (path=%s)", chosen)
    return chosen
