import logging
import os
from datetime import datetime
from typing import Optional

LOGGER_NAME = "liked_songs"

_logger = logging.getLogger(LOGGER_NAME)

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> Optional[str]:
    """
    Configure root logging:
      - StreamHandler to the console (messages only, the CLI is the UI)
      - FileHandler to a new file per run when log_dir is set: log-YYYY-MM-DD-HH-MM-SS
      - werkzeug request logs routed to root

    Returns the path to the created log file, if any.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level or "INFO").upper(), logging.INFO))

    # Re-running setup (tests, reloads) must not stack handlers.
    for h in list(root.handlers):
        if getattr(h, "_liked_songs", False):
            root.removeHandler(h)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    console._liked_songs = True
    root.addHandler(console)

    log_path = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, f"log-{datetime.now().strftime('%Y-%m-%d-%H-%M-%S')}")
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        file_handler._liked_songs = True
        root.addHandler(file_handler)

    werkzeug = logging.getLogger("werkzeug")
    werkzeug.handlers = []
    werkzeug.propagate = True
    werkzeug.setLevel(logging.WARNING)

    return log_path


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✓ {message}")


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
