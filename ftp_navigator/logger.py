import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"


def setup_logging(config: LogConfig) -> None:
    """
    Configure the root logger from a LogConfig.

    Existing root handlers are replaced, so calling this twice (e.g. once per
    CLI invocation in tests) never duplicates output. A file handler is added
    when ``config.file`` is set, a stderr handler when ``config.console`` is
    true. Unknown level names fall back to INFO.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _build_handlers(config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # prompt_toolkit logs every key binding lookup at DEBUG
    logging.getLogger("prompt_toolkit").setLevel(max(level, logging.WARNING))


def _build_handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if config.file:
        log_path = Path(config.file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))

    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))

    return handlers
