"""Raw-mode keyboard input for POSIX terminals."""

from __future__ import annotations

import os
import select
import sys
import termios
import tty
from typing import TextIO

_ESCAPE_SEQUENCES: dict[bytes, str] = {
    b"\x1b[A": "up",
    b"\x1b[B": "down",
    b"\x1b[C": "right",
    b"\x1b[D": "left",
    b"\x1bOA": "up",
    b"\x1bOB": "down",
    b"\x1bOC": "right",
    b"\x1bOD": "left",
}

_CONTROL_KEYS: dict[int, str] = {
    0x0D: "enter",
    0x0A: "enter",
    0x1B: "esc",
    0x7F: "backspace",
    0x08: "backspace",
}


def decode_keys(data: bytes) -> list[str]:
    """Translate raw terminal input into key names.

    Arrow keys become ``"up"``, ``"down"``, ``"left"`` and ``"right"``;
    Enter, Escape and Backspace become ``"enter"``, ``"esc"`` and
    ``"backspace"``; printable ASCII characters are returned as themselves.
    Other bytes are dropped.

    Example:
        >>> decode_keys(b"\\x1b[A5.\\r")
        ['up', '5', '.', 'enter']
    """
    keys: list[str] = []
    index = 0
    while index < len(data):
        sequence = data[index : index + 3]
        if sequence in _ESCAPE_SEQUENCES:
            keys.append(_ESCAPE_SEQUENCES[sequence])
            index += 3
            continue
        byte = data[index]
        index += 1
        if byte in _CONTROL_KEYS:
            keys.append(_CONTROL_KEYS[byte])
        elif 0x20 <= byte < 0x7F:
            keys.append(chr(byte))
    return keys


class KeyReader:
    """Context manager putting the terminal into cbreak mode.

    Args:
        stream: Terminal input stream. Defaults to ``sys.stdin``.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._fd = (stream or sys.stdin).fileno()
        self._saved: list | None = None

    def __enter__(self) -> KeyReader:
        self._saved = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None

    def read_keys(self, timeout: float) -> list[str]:
        """Wait up to *timeout* seconds for input and return decoded keys."""
        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return []
        return decode_keys(os.read(self._fd, 64))
