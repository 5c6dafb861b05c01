"""
Console user interface utilities for Pi Manager.
Handles colouring, threshold highlighting, key input and paging.
"""
import os
import subprocess
import sys
from typing import Callable, Dict, NamedTuple, Optional

COLORS = {
    'RESET': '\033[0m',
    'RED': '\033[31m',
    'GREEN': '\033[32m',
    'YELLOW': '\033[33m',
    'DIM': '\033[2m',
    'BOLD': '\033[1m'
}


class Threshold(NamedTuple):
    """Warning and critical levels for one metric; readings at or above a level take its colour."""
    metric: str
    warn: float
    crit: float


THRESHOLDS: Dict[str, Threshold] = {t.metric: t for t in (
    Threshold("cpu", 70, 90),
    Threshold("ram", 70, 90),
    Threshold("disk", 80, 95),
    Threshold("temp", 60, 75),
    Threshold("swap", 0, 100),
)}

# dBm: lower is worse
WIFI_WARN_DBM = -70
WIFI_CRIT_DBM = -85


def _supports_color() -> bool:
    """
    Colour is used when stdout is a terminal and ``NO_COLOR`` is not set.
    """
    return sys.stdout.isatty() and 'NO_COLOR' not in os.environ


def colored_text(text: str, color: str, force: Optional[bool] = None) -> str:
    """
    Wraps text with ANSI color codes if supported.

    :param text: Text to colorize
    :type text: str
    :param color: Color name from COLORS dict
    :type color: str
    :param force: Override terminal detection
    :type force: Optional[bool]
    :return: Colorized text if supported, original text otherwise
    :rtype: str
    """
    enabled = _supports_color() if force is None else force
    if not enabled or color not in COLORS:
        return text
    return COLORS[color] + text + COLORS['RESET']


def severity(metric: str, value: float) -> str:
    """
    ``OK``, ``WARN`` or ``CRIT`` for a reading, rounded to the nearest integer first.
    """
    if metric == "wifi":
        if value <= WIFI_CRIT_DBM:
            return "CRIT"
        if value <= WIFI_WARN_DBM:
            return "WARN"
        return "OK"
    threshold = THRESHOLDS.get(metric)
    if threshold is None:
        return "OK"
    rounded = round(value)
    if rounded >= threshold.crit:
        return "CRIT"
    if rounded >= threshold.warn:
        return "WARN"
    return "OK"


_SEVERITY_COLORS = {"OK": "GREEN", "WARN": "YELLOW", "CRIT": "RED"}


def color_value(metric: str, value: Optional[float], text: str, force: Optional[bool] = None) -> str:
    """
    Colours ``text`` by the severity of ``value``; unavailable readings are dimmed.
    """
    if value is None:
        return colored_text(text, "DIM", force)
    return colored_text(text, _SEVERITY_COLORS[severity(metric, value)], force)


def display_error(message: str, error_type: str = "ERROR") -> None:
    """
    Displays an error message to the console with proper formatting.

    :param message: The error message to display
    :type message: str
    :param error_type: Type of error for the prefix
    :type error_type: str
    """
    print(f"{colored_text(f'[{error_type}]', 'RED')} {message}", file=sys.stderr)


def clear_screen() -> None:
    if sys.stdout.isatty():
        sys.stdout.write("\033[H\033[2J")
        sys.stdout.flush()


def read_key(prompt: str = "") -> str:
    """
    Reads a single keypress without waiting for Enter.

    Falls back to a line read when stdin is not a terminal.

    :param prompt: Text shown before waiting
    :type prompt: str
    :return: The key pressed, or an empty string at end of input
    :rtype: str
    """
    if prompt:
        sys.stdout.write(prompt)
        sys.stdout.flush()

    if not sys.stdin.isatty():
        line = sys.stdin.readline()
        return line[:1] if line else ""

    import termios
    import tty

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        key = sys.stdin.read(1)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
    if key == "\x03":
        raise KeyboardInterrupt
    sys.stdout.write("\n")
    return key


def pause(read: Callable[[str], str] = read_key) -> None:
    read("Press any key to continue...")


def page(text: str) -> None:
    """
    Shows text through ``less -R``, or prints it when no pager is available.
    """
    if sys.stdout.isatty():
        try:
            subprocess.run(["less", "-R"], input=text, text=True, check=False)
            return
        except FileNotFoundError:
            pass
    print(text)
