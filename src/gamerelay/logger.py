"""Console log formatting for the ``gamerelay`` logger hierarchy.

Modules log through plain ``logging.getLogger("gamerelay.<module>")``;
this module only decides how those records look on stderr.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Protocol, TextIO

from gamerelay.config import FormatterName


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


class FormatterFn(Protocol):
    def __call__(
        self,
        *,
        time: datetime,
        levelno: int,
        location: str,
        message: str,
        colors: bool,
    ) -> str: ...


def _color(text: str, enabled: bool, *codes: str) -> str:
    if not enabled:
        return text
    return f"{''.join(codes)}{text}{Colors.RESET}"


def _format_level(levelno: int, colors: bool) -> str:
    if levelno >= logging.ERROR:
        return _color("[ERROR]", colors, Colors.RED, Colors.BOLD)
    if levelno >= logging.WARNING:
        return _color("[WARN]", colors, Colors.YELLOW, Colors.BOLD)
    if levelno >= logging.INFO:
        return _color("[INFO]", colors, Colors.CYAN)
    return _color("[DEBUG]", colors, Colors.MAGENTA)


class formatters:
    @staticmethod
    def verbose(
        *,
        time: datetime,
        levelno: int,
        location: str,
        message: str,
        colors: bool,
    ) -> str:
        time_str = _color(time.strftime("%H:%M:%S.%f")[:-3], colors, Colors.DIM)
        lvl = _format_level(levelno, colors)
        loc = _color(location, colors, Colors.BLUE)
        msg = message
        if levelno >= logging.ERROR:
            msg = _color(message, colors, Colors.RED)
        elif levelno >= logging.WARNING:
            msg = _color(message, colors, Colors.YELLOW)
        return f"{time_str} {lvl} {loc} {msg}"

    @staticmethod
    def compact(
        *,
        time: datetime,
        levelno: int,
        location: str,
        message: str,
        colors: bool,
    ) -> str:
        del location
        time_str = _color(time.strftime("%H:%M:%S"), colors, Colors.DIM)
        return f"{time_str} {_format_level(levelno, colors)} {message}"

    @staticmethod
    def minimal(
        *,
        time: datetime,
        levelno: int,
        location: str,
        message: str,
        colors: bool,
    ) -> str:
        del time, location
        return f"{_format_level(levelno, colors)} {message}"


_FORMATTERS: dict[str, FormatterFn] = {
    "verbose": formatters.verbose,
    "compact": formatters.compact,
    "minimal": formatters.minimal,
}


class RelayFormatter(logging.Formatter):
    """``logging.Formatter`` that delegates to one of ``formatters``."""

    def __init__(self, fn: FormatterFn = formatters.verbose, *, colors: bool = False) -> None:
        super().__init__()
        self._fn = fn
        self._colors = colors

    def format(self, record: logging.LogRecord) -> str:
        text = self._fn(
            time=datetime.fromtimestamp(record.created),
            levelno=record.levelno,
            location=f"{record.name}:{record.funcName}:{record.lineno}",
            message=record.getMessage(),
            colors=self._colors,
        )
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


_logger = logging.getLogger("gamerelay")


def configure(
    level: str | int = "INFO",
    formatter: FormatterName = "verbose",
    colors: bool | None = None,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Attach a console handler to the ``gamerelay`` logger.

    Replaces any handler installed by a previous call, so it is safe to call
    again after the configuration file has been read.

    Parameters
    ----------
    level : str | int
        Level name or number applied to the ``gamerelay`` logger.
    formatter : FormatterName
        Line layout.
    colors : bool | None
        ANSI colours. ``None`` enables them only when *stream* is a TTY.
    stream : TextIO | None
        Destination, defaults to ``sys.stderr``.

    Returns
    -------
    logging.Handler
        The installed handler.
    """
    target = stream or sys.stderr
    use_colors = target.isatty() if colors is None else colors

    for existing in list(_logger.handlers):
        if getattr(existing, "_gamerelay_console", False):
            _logger.removeHandler(existing)

    handler = logging.StreamHandler(target)
    handler.setFormatter(RelayFormatter(_FORMATTERS[formatter], colors=use_colors))
    handler._gamerelay_console = True  # type: ignore[attr-defined]
    _logger.addHandler(handler)
    _logger.setLevel(level.upper() if isinstance(level, str) else level)
    _logger.propagate = False
    return handler
