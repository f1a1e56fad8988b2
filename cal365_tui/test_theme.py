#!/usr/bin/env python3
"""
Tests for themes, glyph sets and calendar colors
"""

import curses
import sys

import pytest

from cal365_tui.models import CALENDAR_COLORS, Calendar
from cal365_tui.theme import (
    GLYPH_SETS,
    THEMES,
    Palette,
    ThemeError,
    calendar_color,
    nearest_basic_color,
    parse_hex_color,
    resolve_symbols,
    resolve_theme,
)


def test_parse_hex_color():
    assert parse_hex_color("#a6e3a1") == (166, 227, 161)
    assert parse_hex_color("FFFFFF") == (255, 255, 255)
    for bad in ("#fff", "#gggggg", ""):
        with pytest.raises(ThemeError):
            parse_hex_color(bad)


def test_resolve_theme():
    assert resolve_theme("nord") == THEMES["nord"]
    assert resolve_theme("missing") == THEMES["catppuccin"], "Unknown names fall back"

    custom = resolve_theme("mine", {"mine": {"blue": "#000080", "sparkle": "#ffffff", "yellow": "nope"}})
    assert custom.blue == (0, 0, 128)
    assert custom.yellow == THEMES["catppuccin"].yellow, "Bad values keep the base color"
    assert custom.background == THEMES["catppuccin"].background


def test_resolve_symbols():
    assert resolve_symbols("ascii") == GLYPH_SETS["ascii"]
    assert resolve_symbols("unknown") == GLYPH_SETS["unicode"]

    custom = resolve_symbols("mine", {"mine": {"bullet": "* "}}, {"selected": "=> ", "bogus": "x"})
    assert custom.bullet == "* ", "Custom font layered over unicode"
    assert custom.selected == "=> ", "Symbol overrides applied last"
    assert custom.arrow_left == GLYPH_SETS["unicode"].arrow_left


def test_calendar_color_overrides():
    work = Calendar("id-1", "Work")
    assert calendar_color(0, work) == CALENDAR_COLORS[0]
    assert calendar_color(13, work) == CALENDAR_COLORS[1], "Palette cycles"
    assert calendar_color(0, work, {"Work": "#010203"}) == (1, 2, 3)
    assert calendar_color(0, work, {"id-1": "#040506", "Work": "#010203"}) == (4, 5, 6), "Id beats name"
    assert calendar_color(2, work, {"Work": "red"}) == CALENDAR_COLORS[2], "Invalid override ignored"


def test_palette_without_terminal():
    palette = Palette(THEMES["catppuccin"])
    assert palette.attr() == 0
    assert palette.attr(bold=True) == curses.A_BOLD
    assert nearest_basic_color((250, 0, 10)) == curses.COLOR_RED


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, "-v", "-s"]))
