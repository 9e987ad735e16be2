from enum import Enum
import os
import tty
import sys
import codecs
import select
import termios


class KeyCodes(Enum):
    # KeyCodes {{{
    EDIT = "e"
    QUIT = "q"
    YES = "y"
    NO = "n"
    TAB = "\t"
    ENTER = "\r"
    NEWLINE = "\n"
    ESCAPE = "\x1b"
    DELETE = "\x08"      # Ctrl+H
    BACKSPACE = "\x7f"
    FORCE_QUIT = "\x11"  # Ctrl+Q
    # }}}


# Keeps multi-byte characters intact across single byte reads
_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")


def initialize() -> list:
    """
    This setup function is relavent on unix-like
    systems to ensure the escape codes passed to
    the terminal operate as expected, and that keys
    arrive one at a time. It returns the original
    state of the terminal, applicable to reset.
    """
    # initialize {{{
    fileno = sys.stdin.fileno()
    state = termios.tcgetattr(fileno)
    tty.setraw(fileno)
    return state
    # }}}


def reset(original_state: list) -> None:
    """
    This is required because some terminals on unix-like systems
    will not return, by default, to their original state. This
    function is used to address this.
    """
    # reset {{{
    fileno = sys.stdin.fileno()
    termios.tcsetattr(fileno, termios.TCSADRAIN, original_state)
    # }}}


def read_char(fileno: int = None) -> str:
    """
    Reads straight from the descriptor so bytes still waiting
    are visible to select, unlike the buffered sys.stdin.
    Returns "" once input is closed.
    """
    # read_char {{{
    fileno = sys.stdin.fileno() if fileno is None else fileno
    while True:
        data = os.read(fileno, 1)
        if data == b"":
            return ""
        char = _decoder.decode(data)
        if char != "":
            return char
    # }}}


def char_waiting(timeout: float, fileno: int = None) -> bool:
    # char_waiting {{{
    fileno = sys.stdin.fileno() if fileno is None else fileno
    ready, _, _ = select.select([fileno], [], [], timeout)
    return bool(ready)
    # }}}
