"""Coloured console output that can be silenced."""

from __future__ import annotations

import sys
from enum import Enum
from typing import Optional, TextIO

_RESET = "\033[0m"


class Color(Enum):
    """Colours a message can be printed in."""

    BLACK = "\033[0;90m"
    RED = "\033[0;91m"
    GREEN = "\033[0;92m"
    YELLOW = "\033[0;93m"
    BLUE = "\033[0;94m"
    CYAN = "\033[0;96m"
    PINK = "\033[0;95m"
    WHITE = "\033[0;97m"
    GRAY = _RESET
    DARK_GRAY = "\033[0;97m "


_ESCAPES = {color: color.value.rstrip() for color in Color}


class Logger:
    """Writes printf-style formatted, coloured messages to a stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream
        self._disable_output = False

    def print(self, color: Color, message: str, *args: object) -> None:
        """Print ``message``, formatted with ``args`` if any, in ``color``."""
        if self._disable_output:
            return
        text = message % args if args else message
        stream = self._stream if self._stream is not None else sys.stdout
        try:
            stream.write(_ESCAPES[color])
            stream.write(text)
        finally:
            stream.flush()
            stream.write(_RESET)
            stream.flush()

    def info(self, message: str, *args: object) -> None:
        self.print(Color.CYAN, message, *args)

    def warn(self, message: str, *args: object) -> None:
        self.print(Color.YELLOW, message, *args)

    def error(self, message: str, *args: object) -> None:
        self.print(Color.RED, message, *args)

    def success(self, message: str, *args: object) -> None:
        self.print(Color.GREEN, message, *args)

    def log(self, message: str, *args: object) -> None:
        self.print(Color.GRAY, message, *args)

    def disable_output(self, value: bool) -> None:
        """Silence (True) or re-enable (False) all output."""
        self._disable_output = value

    def is_output_disabled(self) -> bool:
        return self._disable_output