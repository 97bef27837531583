import logging
import os
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED_MARK = "_receipt_ocr_configured"


def _coerce_level(value: Optional[Union[str, int]]) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        name = value.strip().upper()
        if name == "WARN":
            name = "WARNING"
        level = logging.getLevelName(name)
        if isinstance(level, int):
            return level
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return the ``receipt_ocr.<name>`` logger, configured on first use.

    Output goes to stderr so the CLI can keep stdout for JSON. ``LOG_LEVEL``
    sets the level (default INFO) and ``LOG_FILE`` adds an appending file
    handler.
    """
    logger = logging.getLogger(f"receipt_ocr.{name}")
    if getattr(logger, _CONFIGURED_MARK, False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            sys.stderr.write(f"LOG_FILE {log_file!r} could not be opened ({e}); logging to stderr only\n")
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    setattr(logger, _CONFIGURED_MARK, True)
    return logger
