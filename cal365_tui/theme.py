"""
Colors and glyphs.

Themes are plain RGB triples; Palette turns them into curses attributes,
defining custom colors when the terminal allows it and falling back to the
nearest of the eight standard colors otherwise.
"""

import curses
import logging
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional, Tuple

from cal365_tui.models import Calendar, color_for_index

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


class ThemeError(ValueError):
    """Bad color value in a theme or override"""


def parse_hex_color(value: str) -> RGB:
    """Parse '#rrggbb' (or 'rrggbb') into an RGB tuple"""
    text = value.strip().lstrip('#')
    if len(text) != 6:
        raise ThemeError(f"invalid color {value!r}")
    try:
        return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))
    except ValueError as e:
        raise ThemeError(f"invalid color {value!r}") from e


@dataclass(frozen=True)
class Theme:
    background: RGB
    foreground: RGB
    yellow: RGB
    blue: RGB
    mauve: RGB


THEMES: Dict[str, Theme] = {
    "catppuccin": Theme(
        background=(30, 30, 46),
        foreground=(205, 214, 244),
        yellow=(249, 226, 175),
        blue=(137, 180, 250),
        mauve=(203, 166, 247),
    ),
    "nord": Theme(
        background=(46, 52, 64),
        foreground=(216, 222, 233),
        yellow=(235, 203, 139),
        blue=(129, 161, 193),
        mauve=(180, 142, 173),
    ),
    "gruvbox": Theme(
        background=(40, 40, 40),
        foreground=(235, 219, 178),
        yellow=(250, 189, 47),
        blue=(131, 165, 152),
        mauve=(211, 134, 155),
    ),
}


def resolve_theme(name: str, custom_themes: Optional[Dict[str, Dict[str, str]]] = None) -> Theme:
    """Named theme, or a custom theme layered over catppuccin"""
    custom_themes = custom_themes or {}
    if name in custom_themes:
        base = THEMES["catppuccin"]
        overrides = {}
        for key, value in custom_themes[name].items():
            if key not in {f.name for f in fields(Theme)}:
                logger.warning(f"Unknown color {key!r} in custom theme {name!r}")
                continue
            try:
                overrides[key] = parse_hex_color(str(value))
            except ThemeError as e:
                logger.warning(f"Custom theme {name!r}: {e}")
        return replace(base, **overrides)
    if name in THEMES:
        return THEMES[name]
    logger.warning(f"Unknown theme {name!r}, using catppuccin")
    return THEMES["catppuccin"]


@dataclass(frozen=True)
class Symbols:
    selected: str
    bullet: str
    all_calendars: str
    my_calendars: str
    arrow_left: str
    arrow_right: str
    calendar: str
    clock: str


GLYPH_SETS: Dict[str, Symbols] = {
    "nerd": Symbols(
        selected="❯ ",
        bullet="■ ",
        all_calendars=" ",
        my_calendars=" ",
        arrow_left="",
        arrow_right="",
        calendar=" ",
        clock=" ",
    ),
    "unicode": Symbols(
        selected="❯ ",
        bullet="■ ",
        all_calendars="✨ ",
        my_calendars="👤 ",
        arrow_left="←",
        arrow_right="→",
        calendar="",
        clock="",
    ),
    "ascii": Symbols(
        selected="> ",
        bullet="# ",
        all_calendars="* ",
        my_calendars="@ ",
        arrow_left="<",
        arrow_right=">",
        calendar="",
        clock="",
    ),
}


def resolve_symbols(name: str, custom_fonts: Optional[Dict[str, Dict[str, str]]] = None,
                    overrides: Optional[Dict[str, str]] = None) -> Symbols:
    """Glyph set by name or custom font, then per-symbol overrides on top"""
    custom_fonts = custom_fonts or {}
    known = {f.name for f in fields(Symbols)}

    def apply(symbols: Symbols, values: Dict[str, str], origin: str) -> Symbols:
        changes = {}
        for key, value in values.items():
            if key in known:
                changes[key] = str(value)
            else:
                logger.warning(f"Unknown symbol {key!r} in {origin}")
        return replace(symbols, **changes)

    if name in custom_fonts:
        symbols = apply(GLYPH_SETS["unicode"], custom_fonts[name], f"custom font {name!r}")
    elif name in GLYPH_SETS:
        symbols = GLYPH_SETS[name]
    else:
        logger.warning(f"Unknown font {name!r}, using unicode glyphs")
        symbols = GLYPH_SETS["unicode"]

    if overrides:
        symbols = apply(symbols, overrides, "symbols")
    return symbols


def calendar_color(index: int, calendar: Calendar, overrides: Optional[Dict[str, str]] = None) -> RGB:
    """Palette color for a calendar unless calendar_overrides pins one by id or name"""
    if overrides:
        value = overrides.get(calendar.id) or overrides.get(calendar.name)
        if value:
            try:
                return parse_hex_color(str(value))
            except ThemeError as e:
                logger.warning(f"Override for {calendar.name!r}: {e}")
    return color_for_index(index)


# Approximate RGB of the eight standard curses colors
_BASIC_COLORS = {
    curses.COLOR_BLACK: (0, 0, 0),
    curses.COLOR_RED: (205, 0, 0),
    curses.COLOR_GREEN: (0, 205, 0),
    curses.COLOR_YELLOW: (205, 205, 0),
    curses.COLOR_BLUE: (0, 0, 238),
    curses.COLOR_MAGENTA: (205, 0, 205),
    curses.COLOR_CYAN: (0, 205, 205),
    curses.COLOR_WHITE: (229, 229, 229),
}

# First color number we redefine; keeps the 16 standard ones intact
_FIRST_CUSTOM_COLOR = 16


def nearest_basic_color(rgb: RGB) -> int:
    return min(
        _BASIC_COLORS,
        key=lambda c: sum((a - b) ** 2 for a, b in zip(_BASIC_COLORS[c], rgb)),
    )


class Palette:
    """Maps (fg, bg) RGB pairs to curses attributes.

    attr() returns plain attributes until start() has run, so drawing code
    can be exercised without a terminal.
    """

    def __init__(self, theme: Theme):
        self.theme = theme
        self.started = False
        self._colors: Dict[RGB, int] = {}
        self._pairs: Dict[Tuple[int, int], int] = {}
        self._next_color = _FIRST_CUSTOM_COLOR
        self._next_pair = 1
        self._custom = False

    def start(self):
        """Initialise curses colors; call after initscr"""
        curses.start_color()
        self._custom = curses.can_change_color() and curses.COLORS > _FIRST_CUSTOM_COLOR
        self.started = True
        logger.debug(f"Palette: {curses.COLORS} colors, {curses.COLOR_PAIRS} pairs, custom={self._custom}")

    def _color_number(self, rgb: RGB) -> int:
        if rgb in self._colors:
            return self._colors[rgb]
        number = None
        if self._custom and self._next_color < curses.COLORS:
            try:
                # curses wants 0-1000 per channel
                curses.init_color(self._next_color, *(c * 1000 // 255 for c in rgb))
                number = self._next_color
                self._next_color += 1
            except curses.error:
                number = None
        if number is None:
            number = nearest_basic_color(rgb)
        self._colors[rgb] = number
        return number

    def _pair_number(self, fg: RGB, bg: RGB) -> int:
        key = (self._color_number(fg), self._color_number(bg))
        if key in self._pairs:
            return self._pairs[key]
        if self._next_pair >= curses.COLOR_PAIRS:
            return 0
        try:
            curses.init_pair(self._next_pair, *key)
        except curses.error:
            return 0
        self._pairs[key] = self._next_pair
        self._next_pair += 1
        return self._pairs[key]

    def attr(self, fg: Optional[RGB] = None, bg: Optional[RGB] = None, bold: bool = False) -> int:
        flags = curses.A_BOLD if bold else 0
        if not self.started:
            return flags
        fg = fg or self.theme.foreground
        bg = bg or self.theme.background
        return curses.color_pair(self._pair_number(fg, bg)) | flags
