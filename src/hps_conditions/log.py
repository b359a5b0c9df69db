from __future__ import annotations

import logging
from typing import Union

ROOT_LOGGER_NAME = "hps_conditions"

_FORMAT = "%(name)s [ %(levelname)s ] %(message)s"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Attach a console handler to the package logger and set its level.

    Safe to call repeatedly; only one handler is ever installed.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    resolved = _coerce_level(level)
    handler = next(
        (h for h in logger.handlers if getattr(h, "_hps_conditions", False)), None
    )
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._hps_conditions = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    handler.setLevel(resolved)
    logger.setLevel(resolved)
    return logger


def set_log_level(level: Union[int, str]) -> None:
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    resolved = _coerce_level(level)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)
