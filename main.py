import sys
import shutil
import signal
import logging
import argparse
import traceback
import threading
import configparser
from enum import Enum
from pathlib import Path
from queue import Empty, Queue
from dataclasses import dataclass, fields
from app import ApplicationState, Editing, ExitConfirm, Normal, PendingRequest
from request import DEFAULT_TIMEOUT, RequestError, fetch
from ui import (BorderStyle, ColorMode, RenderContext, Theme, clear_screen,
                disable_buffer, enable_buffer, hide_cursor, populate_borders,
                render, set_cursor, show_cursor, ANIMATION_LENGTH)


ANIMATION_DELAY = 0.2   # Seconds between animation frames
ESCAPE_DELAY = 0.05     # Seconds to wait for the rest of an escape sequence

# Used next to main.py when no --config is given
DEFAULT_CONFIG_FILE = Path(__file__).parent / "theme.ini"

# Built in copy of theme.ini, so an installed script runs without it
DEFAULT_CONFIG = {
    "4bit": {
        "text_color": "37", "title_color": "32", "border_color": "90",
        "highlight_color": "33", "hint_color": "31", "popup_color": "90",
        "error_color": "91",
    },
    "8bit": {
        "text_color": "252", "title_color": "35", "border_color": "244",
        "highlight_color": "220", "hint_color": "160", "popup_color": "238",
        "error_color": "203",
    },
    "24bit": {
        "text_color": "220,220,220", "title_color": "80,200,120",
        "border_color": "130,130,130", "highlight_color": "230,200,80",
        "hint_color": "220,80,80", "popup_color": "60,60,60",
        "error_color": "255,110,110",
    },
    "request": {
        "timeout": "10",
    },
}

logger = logging.getLogger(__name__)


@dataclass
class Arguments:
    # Arguments {{{
    debug: bool = False
    log_file: str = None
    timeout: float = None
    config_file: str = None      # None means DEFAULT_CONFIG_FILE
    color_mode: ColorMode = ColorMode.Bit24
    border_style: BorderStyle = BorderStyle.Rounded
    # }}}


class Message(Enum):
    # Message {{{
    KeyPressed = 0
    InputClosed = 1
    ResponseReceived = 2
    ResponseErrored = 3
    # }}}


@dataclass
class Event:
    # Event {{{
    message: Message
    payload: object = None
    pending: PendingRequest = None
    # }}}


def main() -> None:
    """
    Main wraps the platform
    specific implementation
    """
    # main {{{
    args = parse_args()
    configure_logging(args)
    if sys.platform == "win32":
        _win_main(args)
    else:
        _nix_main(args)
    # }}}


def _main_loop(driver: any, args: Arguments) -> None:
    """
    Starts the input thread and runs the update loop
    on the calling thread until the user exits.
    """
    # _main_loop {{{
    theme, timeout = parse_config(args)
    context = RenderContext(
        theme=theme, color_mode=args.color_mode,
        borders=populate_borders(args.border_style),
        size=shutil.get_terminal_size()
    )

    bus = Queue()
    state = ApplicationState()

    input_thread = threading.Thread(target=input_loop, args=(bus, driver),
                                    daemon=True)

    write(enable_buffer() + hide_cursor())
    try:
        input_thread.start()
        update_loop(state, bus, context, args, driver.KeyCodes, timeout)
    finally:
        write(show_cursor() + disable_buffer())
    # }}}


def _win_main(args: Arguments) -> None:
    # _win_main {{{
    import ansi_win

    driver = ansi_win
    ostate, istate = driver.initialize()
    _run(driver, args, lambda: driver.reset(ostate, istate))
    # }}}


def _nix_main(args: Arguments) -> None:
    # _nix_main {{{
    import ansi_nix

    driver = ansi_nix
    orig_state = driver.initialize()
    _run(driver, args, lambda: driver.reset(orig_state))
    # }}}


def _run(driver: any, args: Arguments, restore: callable) -> None:
    """
    Ensures terminal state is restored however
    the application ends.
    """
    # _run {{{
    def signal_trap(sig, frame) -> None:
        write(show_cursor() + disable_buffer())
        restore()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_trap)

    failure = None
    try:
        _main_loop(driver, args)
    except Exception:
        logger.exception("Unexpected exception in the update loop")
        failure = traceback.format_exc()
    finally:
        restore()

    if failure is not None:
        print("An unexpected exception occured")
        print(failure)
        sys.exit(1)
    # }}}


def input_loop(bus: Queue, driver: any) -> None:
    """
    Body of the input thread. Reads one key at a
    time and hands it to the update loop.
    """
    # input_loop {{{
    while True:
        key = read_key(driver)
        if key == "":
            bus.put(Event(Message.InputClosed))
            return
        bus.put(Event(Message.KeyPressed, key))
    # }}}


def read_key(driver: any) -> str:
    """
    Returns a single character, or a whole escape sequence
    (arrows, Home, F-keys ...) when the character is Esc
    and more input follows straight away.
    """
    # read_key {{{
    key = driver.read_char()
    if key != driver.KeyCodes.ESCAPE.value:
        return key

    while driver.char_waiting(ESCAPE_DELAY):
        char = driver.read_char()
        if char == "":
            break
        key += char
        if escape_sequence_done(key):
            break
    return key
    # }}}


def escape_sequence_done(key: str) -> bool:
    # escape_sequence_done {{{
    if len(key) == 2:
        # CSI and SS3 sequences continue, Alt+key does not
        return key[1] not in "[O"
    return key[-1].isalpha() or key[-1] == "~"
    # }}}


def update_loop(state: ApplicationState, bus: Queue, context: RenderContext,
                args: Arguments, keys: type, timeout: float) -> None:
    """
    Processes messages from the bus, updating state
    and triggering a rerender. This is the only place
    the application state is mutated.
    """
    # update_loop {{{
    animation = 0
    draw(state, context, args, animation, True)

    while state.running:
        updateflag = False
        resizeflag = False

        new_size = shutil.get_terminal_size()
        if new_size != context.size:
            context.size = new_size
            updateflag = True
            resizeflag = True

        try:
            event = bus.get(timeout=ANIMATION_DELAY)
        except Empty:
            if state.pending is not None:
                animation = update_request_animation(animation)
                updateflag = True
        else:
            updateflag = handle_event(event, state, bus, keys, timeout) \
                or updateflag

        if updateflag and state.running:
            draw(state, context, args, animation, resizeflag)
    # }}}


def handle_event(event: Event, state: ApplicationState, bus: Queue,
                 keys: type, timeout: float) -> bool:
    """
    Applies a single bus message to the state, returning
    whether a rerender is needed.
    """
    # handle_event {{{
    match event.message:
        case Message.KeyPressed:
            pending = handle_key(event.payload, state, keys)
            if pending is not None:
                start_request(pending, bus, timeout)

        case Message.ResponseReceived:
            state.complete_request(event.pending, event.payload)

        case Message.ResponseErrored:
            state.fail_request(event.pending, event.payload)

        case Message.InputClosed:
            state.running = False

    return True
    # }}}


def handle_key(key: str, state: ApplicationState,
               keys: type) -> PendingRequest:
    """
    Translates a key press into a state operation. Returns
    the pending request when the key submitted one.
    """
    # handle_key {{{
    if key == keys.FORCE_QUIT.value:
        state.running = False
        return None

    if len(key) > 1:
        # Escape sequences have no binding
        return None

    match state.screen:
        case Normal():
            if key == keys.EDIT.value:
                state.begin_edit()
            elif key == keys.QUIT.value:
                state.request_exit()

        case Editing():
            if key == keys.ESCAPE.value:
                state.cancel_edit()
            elif key in (keys.ENTER.value, keys.NEWLINE.value):
                return state.submit()
            elif key in (keys.BACKSPACE.value, keys.DELETE.value):
                state.backspace_draft()
            elif key == keys.TAB.value:
                state.cycle_method()
            elif key.isprintable():
                state.append_to_draft(key)

        case ExitConfirm():
            if key.lower() == keys.YES.value:
                state.confirm_exit(True)
            elif key.lower() == keys.NO.value or key == keys.ESCAPE.value:
                state.confirm_exit(False)

    return None
    # }}}


def start_request(pending: PendingRequest, bus: Queue,
                  timeout: float) -> threading.Thread:
    # start_request {{{
    request_thread = threading.Thread(
        target=send_request,
        args=(pending, bus, timeout),
        daemon=True
    )
    request_thread.start()
    return request_thread
    # }}}


def send_request(pending: PendingRequest, bus: Queue, timeout: float,
                 fetcher: callable = fetch) -> None:
    """
    Primary function that comprises the request thread.
    The outcome always goes back over the bus so only
    the update loop touches the state.
    """
    # send_request {{{
    try:
        body = fetcher(pending.url, pending.method, timeout=timeout)
    except RequestError as error:
        bus.put(Event(Message.ResponseErrored, error, pending))
    except Exception as exception:
        logger.exception("Request to %s crashed", pending.url)
        error = RequestError(f"Unexpected error: {exception}")
        bus.put(Event(Message.ResponseErrored, error, pending))
    else:
        bus.put(Event(Message.ResponseReceived, body, pending))
    # }}}


def draw(state: ApplicationState, context: RenderContext, args: Arguments,
         animation: int, resize: bool) -> None:
    """
    Main render function
    """
    # draw {{{
    frame = render(state.snapshot(), context, animation)
    if resize:
        frame = clear_screen() + frame
    if args.debug:
        frame += _render_debug(state, context, animation)
    write(frame)
    # }}}


def _render_debug(state: ApplicationState, context: RenderContext,
                  animation: int) -> str:
    # _render_debug {{{
    columns, lines = context.size

    debug = \
        f"wid {columns} hgt {lines} | " + \
        f"scr {type(state.screen).__name__} | " + \
        f"pend {state.pending is not None} | " + \
        f"hist {len(state.history)} | " + \
        f"draft {len(state.url_draft)} | anim {animation}"

    pos_x = max(columns - len(debug) - 2, 1)
    return set_cursor(pos_x, lines) + debug
    # }}}


def write(text: str) -> None:
    # write {{{
    sys.stdout.write(text)
    sys.stdout.flush()
    # }}}


def configure_logging(args: Arguments) -> None:
    """
    The terminal belongs to the interface, so log
    records only go to a file when one is given.
    """
    # configure_logging {{{
    if args.log_file is None:
        logging.getLogger().addHandler(logging.NullHandler())
        return

    logging.basicConfig(
        filename=args.log_file,
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
    # }}}


def parse_args(argv: list[str] = None) -> Arguments:
    # parse_args {{{
    description = "Send GET requests and browse JSON responses " + \
        "in the terminal"
    parser = argparse.ArgumentParser(description=description)

    parser.add_argument("-c", "--config",
                        help="Path to theme/config file " +
                        "(defaults to 'theme.ini' beside the script, " +
                        "then built in colors)")

    parser.add_argument("-m", "--mode",
                        help="Color style: '4bit', '8bit', or '24bit' " +
                        "(defaults to '24bit')")

    parser.add_argument("-b", "--border",
                        help="Border style: 'single', 'double' or " +
                        "'rounded' (defaults to 'rounded')")

    parser.add_argument("-t", "--timeout", type=float,
                        help="Request timeout in seconds " +
                        f"(defaults to {DEFAULT_TIMEOUT:g})")

    parser.add_argument("-l", "--log",
                        help="Write diagnostics to this file")

    parser.add_argument("-g", "--debug", action="store_true",
                        help=argparse.SUPPRESS)

    args = Arguments()
    parsed_args = parser.parse_args(argv)

    args.config_file = parsed_args.config

    if parsed_args.mode is not None:
        args.color_mode = (ColorMode)(parsed_args.mode.lower())

    if parsed_args.border is not None:
        args.border_style = (BorderStyle)(parsed_args.border.lower())

    if parsed_args.timeout is not None:
        if parsed_args.timeout <= 0:
            parser.error("--timeout must be positive")
        args.timeout = parsed_args.timeout

    args.log_file = parsed_args.log
    args.debug = parsed_args.debug

    return args
    # }}}


def parse_config(args: Arguments) -> (Theme, float):
    """
    Reads the colors for the selected color mode and the
    request timeout. The command line timeout wins over
    the file.
    """
    # parse_config {{{
    cp = configparser.ConfigParser()
    cp.read_dict(DEFAULT_CONFIG)

    if args.config_file is not None:
        if not cp.read(args.config_file, encoding="utf-8"):
            raise FileNotFoundError(
                f"No config file [{args.config_file}] found")
    elif not cp.read(DEFAULT_CONFIG_FILE, encoding="utf-8"):
        logger.info("No %s, using built in colors", DEFAULT_CONFIG_FILE)

    mode = args.color_mode.value

    colors = {}
    for color in fields(Theme):
        colors[color.name] = validate_colors(
            color.name, cp[mode][color.name], args.color_mode
        )

    timeout = args.timeout
    if timeout is None:
        timeout = cp.getfloat("request", "timeout", fallback=DEFAULT_TIMEOUT)
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    return (Theme(**colors), timeout)
    # }}}


def update_request_animation(animation: int) -> int:
    # update_request_animation {{{
    update = animation + 1
    if update >= ANIMATION_LENGTH:
        update = 0
    return update
    # }}}


def validate_colors(key: str, color: str, mode: ColorMode) -> str:
    """
    We may be expecting an integer value or an array depending
    on the color mode. This validates the expected format.
    """
    # validate_colors {{{
    if mode == ColorMode.Bit24:
        split = color.split(",")
        if len(split) != 3 or not all(c.strip().isdigit() for c in split):
            raise ValueError(f"Invalid RGB color format for {key}={color}")
        return ",".join(c.strip() for c in split)

    try:
        int(color)
    except ValueError:
        raise ValueError(f"Color must be an integer for {key}={color}")
    return color.strip()
    # }}}


if __name__ == "__main__":
    main()
