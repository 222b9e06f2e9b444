"""
terminal.py

Keyboard input for the dashboard.

stdin is switched to non-canonical mode without echo or signals (ICANON,
ECHO and ISIG off, VMIN=0/VTIME=0) rather than tty.setraw(), so rich's
alternate screen output keeps working. Mouse reporting is switched on so
clicks and scrolling do not leak into the shell scrollback; mouse and other
escape sequences are read and discarded.
"""

import logging
import os
import re
import select
import sys
import termios
import time
from typing import IO, Optional

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "Q", "\x03"})

# X10 + SGR mouse reporting
MOUSE_CAPTURE_ON = "\x1b[?1000h\x1b[?1006h"
MOUSE_CAPTURE_OFF = "\x1b[?1006l\x1b[?1000l"

_ESCAPE_SEQUENCE = re.compile(
    r"\x1b\[M[\s\S]{3}"  # X10 mouse: ESC [ M followed by three raw bytes
    r"|\x1b\[[0-?]*[ -/]*[@-~]"  # CSI, including SGR mouse
    r"|\x1bO[\s\S]"  # SS3 function keys
    r"|\x1b[\s\S]?"  # Alt+key or a lone ESC
)


def strip_escape_sequences(data: str) -> str:
    return _ESCAPE_SEQUENCE.sub("", data)


def is_quit(data: str) -> bool:
    """True when the input contains a quit keystroke outside any escape sequence."""
    return any(ch in QUIT_KEYS for ch in strip_escape_sequences(data))


class KeyboardInput:
    """Context manager owning stdin's terminal mode for the dashboard's lifetime."""

    def __init__(self, stream: Optional[IO] = None, output: Optional[IO] = None):
        self.stream = stream if stream is not None else sys.stdin
        self.output = output if output is not None else sys.stdout
        self._fd: Optional[int] = None
        self._saved = None

    @property
    def enabled(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "KeyboardInput":
        try:
            fd = self.stream.fileno()
            saved = termios.tcgetattr(fd)
        except (OSError, ValueError, termios.error):
            logger.debug("stdin is not a terminal; keyboard input disabled")
            return self

        mode = termios.tcgetattr(fd)
        mode[3] &= ~(termios.ICANON | termios.ECHO | termios.ISIG)
        mode[6][termios.VMIN] = 0
        mode[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSADRAIN, mode)
        self._fd, self._saved = fd, saved

        self.output.write(MOUSE_CAPTURE_ON)
        self.output.flush()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._fd is None:
            return False
        fd, saved = self._fd, self._saved
        self._fd = self._saved = None
        try:
            self.output.write(MOUSE_CAPTURE_OFF)
            self.output.flush()
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            termios.tcflush(fd, termios.TCIFLUSH)
        return False

    def read(self, timeout: float) -> str:
        """Wait up to timeout seconds for input and return whatever arrived."""
        if self._fd is None:
            time.sleep(timeout)
            return ""
        readable, _, _ = select.select([self._fd], [], [], timeout)
        if not readable:
            return ""
        try:
            data = os.read(self._fd, 1024)
        except OSError:
            return ""
        return data.decode("utf-8", errors="ignore")

    def wait_for_quit(self, timeout: float) -> bool:
        return is_quit(self.read(timeout))
