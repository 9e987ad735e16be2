import math
from enum import Enum
from dataclasses import dataclass
from wcwidth import wcwidth
from request import pretty_print
from app import Editing, ExitConfirm, Normal, StateSnapshot


TITLE = "LazyPost: Easy HTTP request from the terminal"
URL_PROMPT = "Enter a URL (currently only supports JSON response)"
EXIT_PROMPT = "Would you like to exit. All state is lost on exit? (y/n)"

# Shown in the response pane before the first request
PLACEHOLDER = {"foo": "bar", "baz": 1}

ESC = "\x1b"            # Escape
CSI = f"{ESC}["         # Control Sequence Introducer

EN_ALT_BUF = "?1049h"   # Enable Alternate Buffer
DIS_ALT_BUF = "?1049l"  # Disable Alternate Buffer

TITLE_HEIGHT = 3
FOOTER_HEIGHT = 3
ANIMATION_LENGTH = 5


class ColorMode(Enum):
    """
    Indicates the structure of the escape equence
    """
    # ColorMode {{{
    Bit4 = "4bit"       # Color immediately after CSI
    Bit8 = "8bit"       # Sequence is as follows: 38:5:{color}
    Bit24 = "24bit"     # RGB color sequence
    # }}}


class BorderStyle(Enum):
    # BorderStyle {{{
    Single = "single"
    Double = "double"
    Rounded = "rounded"
    # }}}


@dataclass
class Theme:
    # Theme {{{
    text_color:      str
    title_color:     str
    border_color:    str
    highlight_color: str
    hint_color:      str
    popup_color:     str
    error_color:     str
    # }}}


@dataclass
class Border:
    # Border {{{
    h_single = "─"
    h_double = "═"
    v_single = "│"
    v_double = "║"
    ltc_single = "┌"
    ltc_double = "╔"
    ltc_rounded = "╭"
    lbc_single = "└"
    lbc_double = "╚"
    lbc_rounded = "╰"
    rtc_single = "┐"
    rtc_double = "╗"
    rtc_rounded = "╮"
    rbc_single = "┘"
    rbc_double = "╝"
    rbc_rounded = "╯"
    # }}}


@dataclass(frozen=True)
class Rect:
    # Rect {{{
    x: int       # 1-based column of the left edge
    y: int       # 1-based line of the top edge
    width: int
    height: int
    # }}}


@dataclass
class RenderContext:
    # RenderContext {{{
    theme:      Theme
    borders:    dict
    color_mode: ColorMode
    size:       tuple[int, int]   # (columns, lines)
    # }}}


def render(snapshot: StateSnapshot, context: RenderContext,
           animation: int = 0) -> str:
    """
    Builds one complete frame for the given snapshot.
    Popups are drawn last so they sit on top of the panes.
    """
    # render {{{
    layout = calculate_layout(context.size)

    frame = [
        render_title(context, layout["title"]),
        render_history(snapshot, context, layout["history"], "Request History"),
        render_history(snapshot, context, layout["tags"], "Tags"),
        render_response(snapshot, context, layout["response"]),
        render_footer(snapshot, context, layout["mode"], layout["hints"]),
    ]

    if isinstance(snapshot.screen, Editing):
        frame.append(render_url_popup(snapshot, context, layout["area"],
                                      animation))

    if isinstance(snapshot.screen, ExitConfirm):
        frame.append(render_exit_popup(context, layout["area"]))

    frame.append(reset_style())
    return "".join(frame)
    # }}}


def calculate_layout(size: tuple[int, int]) -> dict:
    """
    Title across the top, footer across the bottom and
    the middle split into history/tags on the left and
    the response on the right.
    """
    # calculate_layout {{{
    columns, lines = size
    middle_y = TITLE_HEIGHT + 1
    middle_h = max(lines - TITLE_HEIGHT - FOOTER_HEIGHT, 1)
    footer_y = middle_y + middle_h

    left_w = math.floor(columns * 35 / 100)
    history_h = math.floor(middle_h * 70 / 100)
    half = math.floor(columns / 2)

    return {
        "area": Rect(1, 1, columns, lines),
        "title": Rect(1, 1, columns, TITLE_HEIGHT),
        "history": Rect(1, middle_y, left_w, history_h),
        "tags": Rect(1, middle_y + history_h, left_w, middle_h - history_h),
        "response": Rect(1 + left_w, middle_y, columns - left_w, middle_h),
        "mode": Rect(1, footer_y, half, FOOTER_HEIGHT),
        "hints": Rect(1 + half, footer_y, columns - half, FOOTER_HEIGHT),
    }
    # }}}


def centered_rect(percent_x: int, percent_y: int, area: Rect,
                  min_height: int = 0) -> Rect:
    # centered_rect {{{
    width = math.floor(area.width * percent_x / 100)
    height = math.floor(area.height * percent_y / 100)
    height = min(max(height, min_height), area.height)

    x = area.x + math.floor((area.width - width) / 2)
    y = area.y + math.floor((area.height - height) / 2)
    return Rect(x, y, width, height)
    # }}}


def render_title(context: RenderContext, rect: Rect) -> str:
    # render_title {{{
    return draw_box(context, rect, [TITLE],
                    text_color=context.theme.title_color)
    # }}}


def render_history(snapshot: StateSnapshot, context: RenderContext,
                   rect: Rect, title: str) -> str:
    """
    One line per completed request. When the list is
    longer than the pane the most recent entries win.
    ╭─ Request History ─╮
    │GET | https://...  │
    ╰───────────────────╯
    """
    # render_history {{{
    rows = [sanitize(request.label()) for request in snapshot.history]
    visible = max(rect.height - 2, 0)
    if len(rows) > visible:
        rows = rows[len(rows) - visible:]

    return draw_box(context, rect, rows, title=title,
                    text_color=context.theme.highlight_color)
    # }}}


def render_response(snapshot: StateSnapshot, context: RenderContext,
                    rect: Rect) -> str:
    """
    Renders the body of the most recent response, the
    last request error, or the placeholder sample.
    """
    # render_response {{{
    lines = populate_response(snapshot, rect.width - 2)
    color = context.theme.error_color \
        if snapshot.error is not None \
        else context.theme.text_color
    return draw_box(context, rect, lines, title="Response",
                    text_color=color)
    # }}}


def populate_response(snapshot: StateSnapshot, width: int) -> list[str]:
    # populate_response {{{
    if snapshot.error is not None:
        text = f"Request failed\n\n{snapshot.error}"
    elif snapshot.latest is not None:
        text = snapshot.latest.response_body
    else:
        text = pretty_print(PLACEHOLDER)

    # splitlines would also break on \x85 and friends
    content = []
    for line in text.split("\n"):
        content += break_line_width(width, sanitize(line))
    return content
    # }}}


def render_footer(snapshot: StateSnapshot, context: RenderContext,
                  mode_rect: Rect, hints_rect: Rect) -> str:
    """
    Current mode on the left, key hints on the right.
    """
    # render_footer {{{
    theme = context.theme
    screen = snapshot.screen

    if isinstance(screen, Normal):
        mode_color = theme.title_color
    elif isinstance(screen, Editing):
        mode_color = theme.highlight_color
    else:
        mode_color = theme.error_color

    if snapshot.editing_target is not None:
        editing = (f"Editing {snapshot.editing_target.value}",
                   theme.title_color)
    else:
        editing = ("Not Editing Anything", theme.border_color)

    frame = draw_box(context, mode_rect, [])
    frame += draw_segments(context, mode_rect, [
        (screen.name, mode_color),
        (" | ", theme.text_color),
        editing,
    ])

    frame += draw_box(context, hints_rect, [])
    frame += draw_segments(context, hints_rect, [
        (key_hints(snapshot), theme.hint_color),
    ])
    return frame
    # }}}


def key_hints(snapshot: StateSnapshot) -> str:
    # key_hints {{{
    if snapshot.pending is not None:
        return "Waiting for response / (Ctrl+Q) to force quit"
    if isinstance(snapshot.screen, Editing):
        return "(ESC) to cancel / (Tab) to switch method / " + \
            "(Enter) to send"
    if isinstance(snapshot.screen, ExitConfirm):
        return "(y) to quit / (n) to go back"
    return "(q) to quit / (e) to enter a URL"
    # }}}


def render_url_popup(snapshot: StateSnapshot, context: RenderContext,
                     area: Rect, animation: int) -> str:
    """
    ╭─ Enter a URL ──────────╮
    │Method -> GET           │
    │╭─ URL ────────────────╮│
    ││https://example.com   ││
    │╰──────────────────────╯│
    ╰────────────────────────╯
    """
    # render_url_popup {{{
    rect = centered_rect(60, 25, area, min_height=7)
    background = context.theme.popup_color

    if snapshot.pending is not None:
        status = f"Sending {animation_frame(animation)}"
    else:
        status = f"Method -> {snapshot.method_draft.value}"

    frame = draw_box(context, rect, [status], title=URL_PROMPT,
                     background=background)

    inner = Rect(rect.x + 1, rect.y + 2, rect.width - 2, 3)
    draft = sanitize(snapshot.url_draft)
    visible = max(inner.width - 3, 0)   # Borders and cursor
    if display_width(draft) > visible:
        # Keep the end of the draft, where typing happens
        draft = trim_width(visible, draft[::-1])[::-1]
    if snapshot.pending is None:
        draft += "_"

    frame += draw_box(context, inner, [draft], title="URL",
                      text_color=context.theme.highlight_color,
                      background=background)
    return frame
    # }}}


def render_exit_popup(context: RenderContext, area: Rect) -> str:
    # render_exit_popup {{{
    rect = centered_rect(60, 25, area, min_height=3)
    lines = break_line_width(rect.width - 2, EXIT_PROMPT)
    return clear_screen() + draw_box(
        context, rect, lines, title="Y/N",
        text_color=context.theme.error_color,
        background=context.theme.popup_color)
    # }}}


def animation_frame(index: int) -> str:
    """
    ··•··
    """
    # animation_frame {{{
    return "".join("•" if i == index else "·"
                   for i in range(ANIMATION_LENGTH))
    # }}}


def draw_box(context: RenderContext, rect: Rect, lines: list[str],
             title: str = "", text_color: str = None,
             background: str = None) -> str:
    """
    Draws a bordered box, filling every inner cell so
    whatever was underneath is overwritten.
    """
    # draw_box {{{
    if rect.width < 2 or rect.height < 2:
        return ""

    mode = context.color_mode
    width = rect.width - 2
    height = rect.height - 2
    border = get_foreground(context.theme.border_color, mode)
    text = get_foreground(text_color or context.theme.text_color, mode)
    fill = get_background(background, mode) if background else ""
    v_border = context.borders["v_border"]

    top, bottom = get_top_bottom_borders(context.borders, width)

    frame = [fill, border, set_cursor(rect.x, rect.y), top]
    if title and width > 6:
        frame.append(set_cursor(rect.x + 2, rect.y))
        frame.append(get_foreground(context.theme.title_color, mode))
        frame.append(cap_line_width(width - 2, f" {title} "))

    for index in range(height):
        row = lines[index] if index < len(lines) else ""
        row = cap_line_width(width, str(row))
        frame.append(set_cursor(rect.x, rect.y + index + 1))
        frame.append(f"{border}{v_border}{text}")
        frame.append(f"{row}{' ' * (width - display_width(row))}")
        frame.append(f"{border}{v_border}")

    frame.append(set_cursor(rect.x, rect.y + rect.height - 1))
    frame.append(f"{border}{bottom}")
    frame.append(reset_style())
    return "".join(frame)
    # }}}


def draw_segments(context: RenderContext, rect: Rect,
                  segments: list[tuple[str, str]]) -> str:
    """
    Writes differently coloured pieces of text on the
    first inner line of an already drawn box.
    """
    # draw_segments {{{
    remaining = rect.width - 2
    frame = [set_cursor(rect.x + 1, rect.y + 1)]
    for text, color in segments:
        if remaining <= 0:
            break
        text = cap_line_width(remaining, text)
        frame.append(get_foreground(color, context.color_mode))
        frame.append(text)
        remaining -= display_width(text)
    frame.append(reset_style())
    return "".join(frame)
    # }}}


def break_line_width(max_w: int, line: str) -> list[str]:
    """
    This breaks a line into a list of strings based on
    a provided width, indenting the broken peices.
    Widths are terminal cells, so wide characters count twice.
    """
    # break_line_width {{{
    line = str(line)
    indent = "  "
    if display_width(line) <= max_w or max_w <= len(indent):
        return [line]

    first = trim_width(max_w, line)
    result = [first]
    sample = line[len(first):]
    step = max_w - len(indent)
    while sample:
        piece = trim_width(step, sample) or sample[0]
        result.append(f"{indent}{piece}")
        sample = sample[len(piece):]

    return result
    # }}}


def cap_line_width(max_w: int, line: str) -> str:
    """
    Cuts a line short, appending with ..
    to indicate this
    """
    # cap_line_width {{{
    line = str(line)
    if display_width(line) > max_w:
        if max_w <= 2:
            return trim_width(max(max_w, 0), line)
        line = trim_width(max_w - 2, line) + ".."  # Length of ..
    return line
    # }}}


def trim_width(max_w: int, line: str) -> str:
    """
    Longest prefix of the line that fits in max_w cells
    """
    # trim_width {{{
    used = 0
    for index, char in enumerate(line):
        used += char_width(char)
        if used > max_w:
            return line[:index]
    return line
    # }}}


def display_width(text: str) -> int:
    # display_width {{{
    return sum(char_width(char) for char in text)
    # }}}


def char_width(char: str) -> int:
    # Combining marks take no cell, control characters report -1
    return max(wcwidth(char), 0)


def sanitize(text: str) -> str:
    """
    Replaces characters a terminal would act on instead
    of print, C0 and C1 controls included, with their
    escaped spelling, so "\\x85" prints as the text \\x85.
    """
    # sanitize {{{
    return "".join(char if char.isprintable()
                   else char.encode("unicode_escape").decode("ascii")
                   for char in text)
    # }}}


def clear_screen() -> str:
    # clear_screen {{{
    return f"{CSI}2J"
    # }}}


def disable_buffer() -> str:
    """
    Reverts screen back to
    previous state before script
    """
    # disable_buffer {{{
    return f"{CSI}{DIS_ALT_BUF}"
    # }}}


def enable_buffer() -> str:
    """
    Creates a new screen buffer
    """
    # enable_buffer {{{
    return f"{CSI}{EN_ALT_BUF}"
    # }}}


def hide_cursor() -> str:
    # hide_cursor {{{
    return f"{CSI}?25l"
    # }}}


def show_cursor() -> str:
    # show_cursor {{{
    return f"{CSI}?25h"
    # }}}


def reset_style() -> str:
    # reset_style {{{
    return f"{CSI}0m"
    # }}}


def set_cursor(x: int, y: int) -> str:
    """
    Escape sequence to move the
    cursor with the assumption that
    location (1,1) is at the top
    left of the screen.
    """
    # set_cursor {{{
    return f"{CSI}{y};{x}H"
    # }}}


def get_foreground(color: str, mode: ColorMode) -> str:
    # get_foreground {{{
    match mode:
        case ColorMode.Bit4:
            return f"{CSI}{color}m"
        case ColorMode.Bit8:
            return f"{CSI}38;5;{color}m"
        case ColorMode.Bit24:
            r, g, b = color.split(",")
            return f"{CSI}38;2;{r};{g};{b}m"
    # }}}


def get_background(color: str, mode: ColorMode) -> str:
    # get_background {{{
    match mode:
        case ColorMode.Bit4:
            # Background codes sit 10 above the foreground ones
            return f"{CSI}{int(color) + 10}m"
        case ColorMode.Bit8:
            return f"{CSI}48;5;{color}m"
        case ColorMode.Bit24:
            r, g, b = color.split(",")
            return f"{CSI}48;2;{r};{g};{b}m"
    # }}}


def get_top_bottom_borders(borders: dict, width: int) -> (str, str):
    # get_top_bottom_borders {{{
    top = f"{borders['lt_corner']}" +        \
          f"{borders['h_border'] * width}" + \
          f"{borders['rt_corner']}"

    bottom = f"{borders['lb_corner']}" +        \
             f"{borders['h_border'] * width}" + \
             f"{borders['rb_corner']}"

    return (top, bottom)
    # }}}


def populate_borders(style: BorderStyle) -> dict:
    # populate_borders {{{
    borders = {}
    if style == BorderStyle.Single:
        borders["h_border"] = Border.h_single
        borders["v_border"] = Border.v_single
        borders["lt_corner"] = Border.ltc_single
        borders["lb_corner"] = Border.lbc_single
        borders["rt_corner"] = Border.rtc_single
        borders["rb_corner"] = Border.rbc_single
    elif style == BorderStyle.Rounded:
        borders["h_border"] = Border.h_single
        borders["v_border"] = Border.v_single
        borders["lt_corner"] = Border.ltc_rounded
        borders["lb_corner"] = Border.lbc_rounded
        borders["rt_corner"] = Border.rtc_rounded
        borders["rb_corner"] = Border.rbc_rounded
    else:
        borders["h_border"] = Border.h_double
        borders["v_border"] = Border.v_double
        borders["lt_corner"] = Border.ltc_double
        borders["lb_corner"] = Border.lbc_double
        borders["rt_corner"] = Border.rtc_double
        borders["rb_corner"] = Border.rbc_double
    return borders
    # }}}
