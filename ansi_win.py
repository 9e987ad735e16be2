from ctypes.wintypes import DWORD
from enum import Enum
import ctypes
import msvcrt
import time


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
    DELETE = "\x7f"
    BACKSPACE = "\x08"
    FORCE_QUIT = "\x11"  # Ctrl+Q
    # }}}


# Input Constants
STD_INPUT_HANDLE = -10
ENABLE_VIRTUAL_TERMINAL_INPUT = 0x0200

# Output Constants
STD_OUTPUT_HANDLE = -11
ENABLE_PROCESSED_OUTPUT = 0x0001
ENABLE_WRAP_AT_EOL_OUTPUT = 0x0002
ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004


def initialize() -> (DWORD, DWORD):
    '''
    Leaves line input and echo off so single keys reach
    the input thread, and turns on escape sequence
    processing for output (needed when running Windows
    CMD 'straight').

    Returns (output, input)
    '''
    # initialize {{{
    kernel = ctypes.windll.kernel32
    stdin = kernel.GetStdHandle(STD_INPUT_HANDLE)
    stdout = kernel.GetStdHandle(STD_OUTPUT_HANDLE)
    istate = DWORD()
    ostate = DWORD()
    kernel.GetConsoleMode(stdin, ctypes.byref(istate))
    kernel.GetConsoleMode(stdout, ctypes.byref(ostate))
    kernel.SetConsoleMode(
            stdin,
            ENABLE_VIRTUAL_TERMINAL_INPUT
    )
    kernel.SetConsoleMode(
            stdout,
            ENABLE_PROCESSED_OUTPUT |
            ENABLE_WRAP_AT_EOL_OUTPUT |
            ENABLE_VIRTUAL_TERMINAL_PROCESSING
    )
    return (ostate, istate)
    # }}}


def reset(ostate: DWORD, istate: DWORD) -> None:
    '''
    Returns the console to the modes it had before
    the application started.
    '''
    # reset {{{
    kernel = ctypes.windll.kernel32
    stdin = kernel.GetStdHandle(STD_INPUT_HANDLE)
    stdout = kernel.GetStdHandle(STD_OUTPUT_HANDLE)
    kernel.SetConsoleMode(stdin, istate)
    kernel.SetConsoleMode(stdout, ostate)
    # }}}


def read_char() -> str:
    '''
    Console prefixes arrows and function keys with
    \\x00 or \\xe0; the pair comes back as one key.
    '''
    # read_char {{{
    char = msvcrt.getwch()
    if char in ("\x00", "\xe0"):
        char += msvcrt.getwch()
    return char
    # }}}


def char_waiting(timeout: float) -> bool:
    # char_waiting {{{
    deadline = time.monotonic() + timeout
    while not msvcrt.kbhit():
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.005)
    return True
    # }}}
